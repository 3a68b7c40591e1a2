"""Agent Controller - drives a tool-using agent with human approvals.

This package runs multi-turn conversations against a streaming model,
suspends a turn while tool calls wait for approval, resumes it once they are
resolved, and reports everything as a typed event stream.
"""

from .agent import AgentManager, AgentManagerFactory
from .config import Settings, load_settings
from .events import AgentEvent, AgentEventType
from .exceptions import (
    AgentBusyError,
    AgentError,
    ClientError,
    ConfigurationError,
    RunCancelled,
    StreamError,
    ToolError,
    ToolExecutionError,
    TurnLimitExceeded,
)
from .tools.base import BaseTool, ToolResult
from .tools.registry import ToolRegistry
from .types import (
    MessageRole,
    RunPhase,
    StreamChunk,
    TokenUsage,
    ToolCall,
    TurnOutcome,
    TurnResult,
    UnifiedMessage,
)

__all__ = [
    # main agent
    "AgentManager",
    "AgentManagerFactory",
    # configuration
    "Settings",
    "load_settings",
    # events
    "AgentEvent",
    "AgentEventType",
    # tools
    "BaseTool",
    "ToolResult",
    "ToolRegistry",
    # types
    "MessageRole",
    "RunPhase",
    "StreamChunk",
    "TokenUsage",
    "ToolCall",
    "TurnOutcome",
    "TurnResult",
    "UnifiedMessage",
    # exceptions
    "AgentBusyError",
    "AgentError",
    "ClientError",
    "ConfigurationError",
    "RunCancelled",
    "StreamError",
    "ToolError",
    "ToolExecutionError",
    "TurnLimitExceeded",
]
