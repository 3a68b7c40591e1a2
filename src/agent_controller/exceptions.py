"""Custom exception hierarchy for the agent controller.

This module defines all custom exceptions used throughout the controller,
organized into logical categories: run control, client errors and tool errors.
"""


class AgentError(Exception):
    """Base exception for all agent errors."""


# =============================================================================
# Run Control - Conditions raised while driving a turn
# =============================================================================

class ConfigurationError(AgentError):
    """No usable provider, model or credential.

    Raised before any network interaction. The caller must fix the settings
    before another turn can succeed.
    """


class TurnLimitExceeded(AgentError):
    """The run used up its model/tool round-trip budget.

    Recoverable: the caller may resubmit or raise the limit.

    Attributes:
        max_turns: The budget that was exceeded
    """

    def __init__(self, max_turns: int):
        self.max_turns = max_turns
        super().__init__(f"Max turns ({max_turns}) exceeded")


class StreamError(AgentError):
    """Model or network failure while a run was streaming.

    Attributes:
        cause: The underlying exception
    """

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Streaming failed: {cause}")


class RunCancelled(AgentError):
    """The turn was cancelled by the user.

    This is a control flow mechanism, not a failure.
    """

    def __init__(self, message: str = "Run cancelled"):
        super().__init__(message)


class AgentBusyError(AgentError):
    """A turn was submitted while another one is still in flight."""


# =============================================================================
# Client Errors - Issues with LLM API interactions
# =============================================================================

class ClientError(AgentError):
    """Base class for LLM client errors."""


class AuthenticationError(ClientError):
    """API key is invalid or missing."""


class RateLimitError(ClientError):
    """Rate limit exceeded."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: float | None = None):
        self.retry_after = retry_after
        if retry_after:
            message = f"{message}. Retry after: {retry_after}s"
        super().__init__(message)


class ProviderUnavailableError(ClientError):
    """Provider API is temporarily unavailable."""


class InvalidResponseError(ClientError):
    """Response from provider could not be parsed."""


# =============================================================================
# Tool Errors - Issues with tool execution
# =============================================================================

class ToolError(AgentError):
    """Base class for tool execution errors."""


class ToolNotFoundError(ToolError):
    """Requested tool does not exist."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool not found: {tool_name}")


class ToolExecutionError(ToolError):
    """Tool execution failed.

    Captured per call and reported to the model as an error result; it never
    aborts the run.
    """

    def __init__(self, tool_name: str, cause: Exception | str):
        self.tool_name = tool_name
        self.cause = cause
        super().__init__(f"Tool '{tool_name}' execution failed: {cause}")
