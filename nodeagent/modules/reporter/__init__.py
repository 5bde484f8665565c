"""
Reporter Module - Black Box Interface

Purpose: Wrap outbound payloads in the canonical envelope
Interface: send(), send_event()
Hidden: Envelope shape, identity merging, drop-when-closed policy
"""

from .reporter import ResultReporter, Transport

__all__ = ["ResultReporter", "Transport"]
