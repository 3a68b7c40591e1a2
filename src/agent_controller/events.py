"""Events emitted by the agent controller.

Every event carries a ``type`` discriminator and a ``data`` payload. This
small, closed vocabulary is the only contract a UI, a log or a test harness
needs to follow a turn.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable


class AgentEventType(str, Enum):
    """Discriminator for agent events."""
    MESSAGE_START = "message_start"
    MESSAGE_CHUNK = "message_chunk"
    MESSAGE_COMPLETE = "message_complete"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_COMPLETE = "tool_call_complete"
    TOOL_APPROVAL_REQUIRED = "tool_approval_required"
    GROUPED_APPROVAL_REQUIRED = "grouped_approval_required"
    ERROR = "error"


@dataclass(frozen=True)
class MessageStart:
    message_id: str


@dataclass(frozen=True)
class MessageChunk:
    """An incremental text fragment.

    Attributes:
        message_id: The message this fragment belongs to
        chunk: This fragment
        full_content: Concatenation of every fragment so far, this one included
    """
    message_id: str
    chunk: str
    full_content: str


@dataclass(frozen=True)
class MessageComplete:
    message_id: str
    content: str


@dataclass(frozen=True)
class ToolCallStart:
    call_id: str
    tool_name: str
    input: str


@dataclass(frozen=True)
class ToolCallComplete:
    """A tool result.

    Attributes:
        call_id: The tool call this result answers
        tool_name: Name of the tool
        output: Tool output, stringified
        is_error: True when the tool execution layer flagged the call as failed
    """
    call_id: str
    tool_name: str
    output: str
    is_error: bool


@dataclass(frozen=True)
class ToolApprovalRequired:
    interruption_id: str
    tool_name: str
    tool_input: str
    call_id: str | None = None


@dataclass(frozen=True)
class ApprovalRequest:
    """One entry of a grouped approval."""
    interruption_id: str
    tool_name: str
    tool_input: str


@dataclass(frozen=True)
class GroupedApprovalRequired:
    group_id: str
    approvals: tuple[ApprovalRequest, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ErrorData:
    error: Exception

    def to_dict(self) -> dict[str, Any]:
        return {"error": str(self.error), "error_type": type(self.error).__name__}


EventData = (
    MessageStart | MessageChunk | MessageComplete | ToolCallStart | ToolCallComplete
    | ToolApprovalRequired | GroupedApprovalRequired | ErrorData
)

_PAYLOAD_TYPES: dict[AgentEventType, type] = {
    AgentEventType.MESSAGE_START: MessageStart,
    AgentEventType.MESSAGE_CHUNK: MessageChunk,
    AgentEventType.MESSAGE_COMPLETE: MessageComplete,
    AgentEventType.TOOL_CALL_START: ToolCallStart,
    AgentEventType.TOOL_CALL_COMPLETE: ToolCallComplete,
    AgentEventType.TOOL_APPROVAL_REQUIRED: ToolApprovalRequired,
    AgentEventType.GROUPED_APPROVAL_REQUIRED: GroupedApprovalRequired,
    AgentEventType.ERROR: ErrorData,
}


@dataclass(frozen=True)
class AgentEvent:
    """A typed agent event.

    Attributes:
        type: The event discriminator
        data: The payload matching ``type``
    """
    type: AgentEventType
    data: EventData

    def __post_init__(self) -> None:
        expected = _PAYLOAD_TYPES[self.type]
        if not isinstance(self.data, expected):
            raise TypeError(
                f"{self.type.value} event requires {expected.__name__}, "
                f"got {type(self.data).__name__}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        if isinstance(self.data, ErrorData):
            data = self.data.to_dict()
        else:
            data = asdict(self.data)
            if "approvals" in data:
                data["approvals"] = list(data["approvals"])
        return {"type": self.type.value, "data": data}


# Signature of event observers
EventListener = Callable[[AgentEvent], None]


def make_event(data: EventData) -> AgentEvent:
    """Wrap a payload in an event, deriving the discriminator from its type."""
    for event_type, payload_type in _PAYLOAD_TYPES.items():
        if isinstance(data, payload_type):
            return AgentEvent(type=event_type, data=data)
    raise TypeError(f"Unknown event payload: {type(data).__name__}")
