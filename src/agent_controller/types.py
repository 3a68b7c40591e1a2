"""Unified types for the agent controller.

These types provide a provider-agnostic interface for LLM interactions.
All clients convert their provider-specific formats to/from these types.
The run phase, turn result and agent configuration types describe the
controller's own state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, AsyncIterator

if TYPE_CHECKING:
    from .clients.base import BaseLLMClient
    from .tools.base import BaseTool


class MessageRole(Enum):
    """Role of a message in the conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(Enum):
    """Reason why the model stopped generating."""
    STOP = "stop"
    TOOL_USE = "tool_use"
    LENGTH = "length"
    ERROR = "error"


@dataclass
class ToolCall:
    """A tool call requested by the model."""
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class PartialToolCall:
    """A partial tool call during streaming."""
    index: int
    id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None


@dataclass
class UsageStats:
    """Token usage reported by a provider for one model response."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class UnifiedMessage:
    """A message in the conversation history.

    This is the canonical message format used throughout the controller.
    Each LLM client converts to/from this format internally.

    Attributes:
        role: The role of the message sender
        content: Text content of the message (optional for tool calls)
        tool_calls: List of tool calls (only for assistant messages)
        tool_call_id: ID of the tool call this message responds to (only for tool role)
        name: Name of the tool (only for tool role)
        is_error: Whether a tool result reports a failed call (only for tool role)
    """
    role: MessageRole
    content: str | None = None
    reasoning_content: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary representation."""
        result: dict[str, Any] = {"role": self.role.value}
        if self.content is not None:
            result["content"] = self.content
        if self.reasoning_content is not None:
            result["reasoning_content"] = self.reasoning_content
        if self.tool_calls:
            result["tool_calls"] = [
                {"id": tc.id, "name": tc.name, "arguments": tc.arguments}
                for tc in self.tool_calls
            ]
        if self.tool_call_id is not None:
            result["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            result["name"] = self.name
        if self.is_error:
            result["is_error"] = True
        return result


@dataclass
class StreamChunk:
    """A chunk of a streaming response.

    Attributes:
        delta_content: New text content in this chunk
        delta_reasoning: New reasoning content in this chunk
        delta_tool_call: Partial tool call update
        finish_reason: Set on the final chunk
        usage: Token usage, set on the chunk that reports it
    """
    delta_content: str | None = None
    delta_reasoning: str | None = None
    delta_tool_call: PartialToolCall | None = None
    finish_reason: FinishReason | None = None
    usage: UsageStats | None = None

    def is_empty(self) -> bool:
        """Check whether the chunk carries nothing worth forwarding."""
        return not (
            self.delta_content or self.delta_reasoning or self.delta_tool_call
            or self.finish_reason or self.usage
        )


# Type alias for streaming responses
StreamIterator = AsyncIterator[StreamChunk]


# ==================== controller state types ====================


@dataclass
class TokenUsage:
    """Token counters accumulated across the turns of a session."""
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, input_tokens: int, output_tokens: int) -> None:
        """Accumulate one response's usage (addition, never replacement)."""
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens

    def reset(self) -> None:
        self.input_tokens = 0
        self.output_tokens = 0

    def snapshot(self) -> TokenUsage:
        return TokenUsage(self.input_tokens, self.output_tokens)

    def to_dict(self) -> dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


class RunPhase(Enum):
    """Phase of the run driver state machine."""
    IDLE = auto()
    STREAMING = auto()
    AWAITING_APPROVAL = auto()
    COMPLETED = auto()
    CANCELLED = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (RunPhase.COMPLETED, RunPhase.CANCELLED, RunPhase.FAILED)


_TERMINAL = {RunPhase.COMPLETED, RunPhase.CANCELLED, RunPhase.FAILED}

# allowed phase transitions; terminal phases always return to IDLE
PHASE_TRANSITIONS: dict[RunPhase, set[RunPhase]] = {
    RunPhase.IDLE: {RunPhase.STREAMING},
    RunPhase.STREAMING: {RunPhase.AWAITING_APPROVAL} | _TERMINAL,
    RunPhase.AWAITING_APPROVAL: {RunPhase.STREAMING, RunPhase.CANCELLED, RunPhase.FAILED},
    RunPhase.COMPLETED: {RunPhase.IDLE},
    RunPhase.CANCELLED: {RunPhase.IDLE},
    RunPhase.FAILED: {RunPhase.IDLE},
}


class TurnOutcome(Enum):
    """How a turn settled."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class TurnResult:
    """Result of one logical turn.

    Attributes:
        outcome: How the turn settled
        history: The session history after the turn
        usage: Token usage after the turn
        content: Final assistant text (if completed)
        error: The error that failed the turn (if failed)
    """
    outcome: TurnOutcome
    history: list[UnifiedMessage]
    usage: TokenUsage
    content: str | None = None
    error: Exception | None = None

    @property
    def is_completed(self) -> bool:
        return self.outcome == TurnOutcome.COMPLETED

    @property
    def is_cancelled(self) -> bool:
        return self.outcome == TurnOutcome.CANCELLED

    @property
    def is_failed(self) -> bool:
        return self.outcome == TurnOutcome.FAILED


@dataclass(frozen=True)
class AgentConfig:
    """Immutable-per-turn bundle handed to the runner.

    Attributes:
        model: The streaming model handle
        instructions: System instructions for the model
        tools: Tools the model may call
        temperature: Sampling temperature
        max_tokens: Max output tokens per response (provider default if None)
        max_turns: Max model/tool round-trips per turn
    """
    model: BaseLLMClient
    instructions: str
    tools: tuple[BaseTool, ...] = field(default_factory=tuple)
    temperature: float | None = None
    max_tokens: int | None = None
    max_turns: int = 25

    @property
    def tools_enabled(self) -> bool:
        return bool(self.tools)

    def get_tool(self, name: str) -> BaseTool | None:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None
