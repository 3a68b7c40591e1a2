from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class ToolResult:
    """Explicit tool result.

    Tools may return a plain value; returning a ToolResult lets a tool flag
    the call as failed without raising.
    """
    output: Any
    is_error: bool = False


class BaseTool(ABC):
    """Abstract base class for all tools.

    Tools whose calls must be authorized by a human before they run (file
    writes, command execution, code execution) set REQUIRES_APPROVAL = True.
    The run then halts on an interruption for every such call.
    """

    # approval configuration - override in subclasses for sensitive tools
    REQUIRES_APPROVAL: bool = False
    OPERATION_TYPE: str = ""  # e.g., "write", "execute", "run_code"
    APPROVAL_CHECK_ARG: str = "path"  # argument name used for auto-approve pattern matching

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the tool name."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Return the tool description."""

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """Return the JSON schema for tool parameters."""

    @abstractmethod
    def execute(self, **kwargs) -> Any:
        """Execute the tool with the given arguments.

        May be a plain function or a coroutine function; the executor awaits
        coroutine results.
        """

    def needs_approval(self, **kwargs) -> bool:
        """Decide whether a call with these arguments needs approval.

        Override for argument-dependent policies.
        """
        return self.REQUIRES_APPROVAL

    def to_schema(self) -> dict[str, Any]:
        """Return the tool schema for LLM function calling."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
