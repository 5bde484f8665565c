"""
API Module - Black Box Interface

Purpose: Wire models shared by every other module
Interface: Command, reply variants, OutboundEnvelope, ConnectionState
Hidden: Field aliases and serialization details
"""

from .models import (
    HEARTBEAT_FRAME,
    AckReply,
    AgentStatusUpdate,
    Command,
    CommandStatus,
    ConnectionState,
    EventReply,
    LogReply,
    OutboundEnvelope,
    Reply,
    ReplyPayload,
    StatusReply,
    reply_adapter,
)

__all__ = [
    "HEARTBEAT_FRAME",
    "AckReply",
    "AgentStatusUpdate",
    "Command",
    "CommandStatus",
    "ConnectionState",
    "EventReply",
    "LogReply",
    "OutboundEnvelope",
    "Reply",
    "ReplyPayload",
    "StatusReply",
    "reply_adapter",
]
