"""
Result reporter for the node agent.

Every frame the agent sends upstream, other than the bare heartbeat, passes
through here so that it is wrapped in exactly one envelope carrying the
agent identity.
"""

import logging
from typing import Any, Dict, Protocol

from nodeagent.modules.api import EventReply, OutboundEnvelope, ReplyPayload

logger = logging.getLogger("nodeagent.reporter")


class Transport(Protocol):
    """The part of the connection the reporter is allowed to use."""

    @property
    def is_open(self) -> bool:
        ...

    async def send_json(self, message: Dict[str, Any]) -> bool:
        ...


class ResultReporter:
    """Wraps replies in the outbound envelope and hands them to the transport."""

    def __init__(self, transport: Transport, agent_id: str):
        """
        Initialize reporter.

        Args:
            transport: Connection used to send frames
            agent_id: Identity merged into every envelope
        """
        self.transport = transport
        self.agent_id = agent_id

    async def send(self, reply: ReplyPayload) -> bool:
        """
        Send a reply with the agent identity merged into its payload.

        Returns:
            True if the frame was written, False if it was dropped
        """
        return await self._send(OutboundEnvelope.for_reply(self.agent_id, reply))

    async def send_event(self, event: EventReply) -> bool:
        """Send a forwarded script event without the identity merge."""
        return await self._send(OutboundEnvelope.for_event(self.agent_id, event))

    async def _send(self, envelope: OutboundEnvelope) -> bool:
        # No buffering: anything produced while disconnected is lost
        if not self.transport.is_open:
            logger.debug(f"Connection not open, dropping {envelope.payload.get('type')} frame")
            return False
        return await self.transport.send_json(envelope.to_wire())
