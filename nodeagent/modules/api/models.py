"""
nodeagent wire models.

These models define the structure of every frame exchanged with the
coordinating server: inbound commands, the reply variants the agent
produces and the envelope that wraps them.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

# Enums


class ConnectionState(str, Enum):
    """Lifecycle state of the server connection."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_RETRYABLE = "closed-retryable"
    CLOSED_FATAL = "closed-fatal"


class CommandStatus(str, Enum):
    """Terminal status reported for a command."""

    ERROR = "error"
    COMPLETED = "completed"


SERVER_TARGET = "server"
HEARTBEAT_FRAME: Dict[str, str] = {"type": "heartbeat"}


# Inbound


class Command(BaseModel):
    """A request from the server to run one script."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Opaque command identifier")
    script: str = Field(..., min_length=1, description="Script name, relative to the scripts directory")
    args: List[str] = Field(default_factory=list, description="Script arguments, in order")
    stdin_data: Optional[List[str]] = Field(None, description="Lines fed to the bulk-input script")

    @field_validator("args", mode="before")
    @classmethod
    def default_args(cls, v):
        """Treat an explicit null like a missing args list."""
        return [] if v is None else v

    @classmethod
    def is_command_frame(cls, frame: Any) -> bool:
        """Check whether a parsed frame has the shape of a command."""
        return isinstance(frame, dict) and bool(frame.get("script")) and bool(frame.get("id"))


# Outbound replies


class ReplyPayload(BaseModel):
    """Base for every reply variant; serializes with wire field names."""

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class AckReply(ReplyPayload):
    type: Literal["ack"] = "ack"
    command_id: str = Field(..., alias="commandId")
    status: Literal["started"] = "started"


class LogReply(ReplyPayload):
    type: Literal["log"] = "log"
    command_id: str = Field(..., alias="commandId")
    stream: Literal["stdout"] = "stdout"
    data: str


class StatusReply(ReplyPayload):
    """Terminal status of a command: either a spawn error or a completion."""

    type: Literal["status"] = "status"
    command_id: str = Field(..., alias="commandId")
    status: CommandStatus
    message: Optional[str] = None
    exit_code: Optional[int] = Field(None, alias="exitCode")

    @model_validator(mode="after")
    def check_variant_fields(self):
        if self.status is CommandStatus.ERROR and self.message is None:
            raise ValueError("error status requires a message")
        if self.status is CommandStatus.COMPLETED and self.exit_code is None:
            raise ValueError("completed status requires an exit code")
        return self

    @classmethod
    def error(cls, command_id: str, message: str) -> "StatusReply":
        return cls(command_id=command_id, status=CommandStatus.ERROR, message=message)

    @classmethod
    def completed(cls, command_id: str, exit_code: int) -> "StatusReply":
        return cls(command_id=command_id, status=CommandStatus.COMPLETED, exit_code=exit_code)

    def to_payload(self) -> Dict[str, Any]:
        # Only the field belonging to the variant goes on the wire
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class AgentStatusUpdate(ReplyPayload):
    type: Literal["agent-status-update"] = "agent-status-update"
    command_id: str = Field(..., alias="commandId")
    status: Any = Field(..., description="Arbitrary JSON reported by the script")


class EventReply(ReplyPayload):
    """Event forwarded verbatim from a script; carries no agent identity."""

    type: Literal["event"] = "event"
    id: Any  # passed through as the script sent it
    payload: Any


Reply = Annotated[
    Union[AckReply, LogReply, StatusReply, AgentStatusUpdate, EventReply],
    Field(discriminator="type"),
]
reply_adapter: TypeAdapter = TypeAdapter(Reply)


class OutboundEnvelope(BaseModel):
    """Wrapper around every message the agent sends to the server."""

    model_config = ConfigDict(populate_by_name=True)

    target: Literal["server"] = SERVER_TARGET
    source_id: str = Field(..., alias="sourceId")
    payload: Dict[str, Any]

    @classmethod
    def for_reply(cls, agent_id: str, reply: ReplyPayload) -> "OutboundEnvelope":
        """Wrap a reply, merging the agent identity into its payload."""
        return cls(source_id=agent_id, payload={**reply.to_payload(), "agentId": agent_id})

    @classmethod
    def for_event(cls, agent_id: str, event: EventReply) -> "OutboundEnvelope":
        """Wrap a forwarded event as-is."""
        return cls(source_id=agent_id, payload=event.to_payload())

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
