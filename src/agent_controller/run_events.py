"""Low-level items streamed by a model/tool run.

The runner yields these while a run is in progress; the event translator
turns them into the public event vocabulary. Consumers must ignore item
types they do not know.
"""

from dataclasses import dataclass
from typing import Any, Literal

from .types import UsageStats


@dataclass(frozen=True)
class ResponseStarted:
    """The model started a new response."""


@dataclass(frozen=True)
class OutputTextDelta:
    delta: str


@dataclass(frozen=True)
class ReasoningDelta:
    delta: str


@dataclass(frozen=True)
class ResponseDone:
    """The model finished a response.

    Attributes:
        usage: Token usage reported for the response (zeros if the provider
            reported none)
    """
    usage: UsageStats


@dataclass(frozen=True)
class ToolCallRequested:
    """The model asked for a tool call.

    Attributes:
        call_id: Provider id of the call
        tool_name: Name of the requested tool
        arguments: Serialized JSON arguments
    """
    call_id: str
    tool_name: str
    arguments: str


@dataclass(frozen=True)
class ToolOutput:
    """A tool call finished.

    Attributes:
        call_id: The call this output answers
        tool_name: Name of the tool
        output: Raw tool output (any JSON-serializable value)
        status: "incomplete" when the tool execution layer flagged the call
            as failed, "completed" otherwise
    """
    call_id: str
    tool_name: str
    output: Any
    status: Literal["completed", "incomplete"] = "completed"

    @property
    def is_error(self) -> bool:
        return self.status == "incomplete"


RunStreamEvent = (
    ResponseStarted | OutputTextDelta | ReasoningDelta | ResponseDone
    | ToolCallRequested | ToolOutput
)
