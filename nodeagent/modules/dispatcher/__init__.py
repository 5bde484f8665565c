"""
Dispatcher Module - Black Box Interface

Purpose: Turn inbound commands into an acknowledgement plus an execution
Interface: dispatch(command)
Hidden: Task bookkeeping, ack-before-result ordering
"""

from .dispatcher import CommandDispatcher

__all__ = ["CommandDispatcher"]
