"""
Connection Module - Black Box Interface

Purpose: Maintain one WebSocket connection to the coordinating server
Interface: run(), connect(), send_json(), stop(), is_open
Hidden: Heartbeat and reconnect timers, close-code classification, frame parsing

Can be replaced with any bidirectional transport that delivers JSON frames.
"""

from .connection import FATAL_CLOSE_CODE, ConnectionManager, build_connect_url

__all__ = ["FATAL_CLOSE_CODE", "ConnectionManager", "build_connect_url"]
