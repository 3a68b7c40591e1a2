"""Tool execution logic for the agent.

This module handles the invocation of tool calls and the approval policy
that decides which calls must halt the run for a human decision.
"""

import asyncio
import fnmatch
import inspect

from ..exceptions import ToolExecutionError, ToolNotFoundError
from ..logging import get_logger
from ..run_events import ToolOutput
from ..tools.base import BaseTool, ToolResult
from ..types import ToolCall

logger = get_logger(__name__)

REJECTION_MESSAGE = (
    "Operation rejected by user: {tool_name} was not executed. "
    "Do not retry this operation - inform the user that it was rejected."
)


class ToolExecutor:
    """Handles tool invocation and approval checks.

    This class manages the execution of tool calls, including:
    - Auto-approval pattern matching
    - Approval requirement checking
    - Capturing tool failures as error-flagged results
    """

    def __init__(
        self,
        tools: dict[str, BaseTool],
        auto_approve_patterns: dict[str, list[str]] | None = None,
    ):
        """Initialize the tool executor.

        Args:
            tools: Dictionary mapping tool names to tool instances.
            auto_approve_patterns: Dict mapping operation types to patterns
                to auto-approve. Example: {"write": ["tests/*", "*.log"]}
        """
        self.tools = tools
        self.auto_approve_patterns = auto_approve_patterns or {}

    def is_auto_approved(self, operation: str, value: str) -> bool:
        """Check if an operation is auto-approved by configured patterns.

        Args:
            operation: The operation type (e.g., "write", "execute").
            value: The value to check against patterns.

        Returns:
            True if the operation matches an auto-approve pattern.
        """
        patterns = self.auto_approve_patterns.get(operation, [])
        return any(fnmatch.fnmatch(value, p) for p in patterns)

    def requires_approval(self, tool_call: ToolCall) -> bool:
        """Check if a tool call must be approved before it runs.

        Unknown tools never need approval; invoking them yields an error
        result instead.
        """
        tool = self.tools.get(tool_call.name)
        if tool is None:
            return False

        if not tool.needs_approval(**tool_call.arguments):
            return False

        check_value = tool_call.arguments.get(tool.APPROVAL_CHECK_ARG, "")
        if self.is_auto_approved(tool.OPERATION_TYPE, str(check_value)):
            logger.debug(f"auto-approved {tool_call.name} for '{check_value}'")
            return False

        return True

    async def invoke(self, tool_call: ToolCall) -> ToolOutput:
        """Run one tool call and capture its result.

        Failures never propagate: an unknown tool, a raised exception or an
        error-flagged ToolResult all produce an "incomplete" output so the
        model can see the error and react.

        Args:
            tool_call: The call to execute.

        Returns:
            The tool output item.
        """
        tool = self.tools.get(tool_call.name)
        if tool is None:
            error = ToolNotFoundError(tool_call.name)
            logger.warning(str(error))
            return self._failed(tool_call, str(error))

        logger.info(f"executing tool '{tool_call.name}' (id: {tool_call.id})")
        try:
            if inspect.iscoroutinefunction(tool.execute):
                result = await tool.execute(**tool_call.arguments)
            else:
                # sync tools run in a worker thread
                result = await asyncio.to_thread(tool.execute, **tool_call.arguments)
                if inspect.isawaitable(result):
                    result = await result
        except Exception as e:
            error = ToolExecutionError(tool_call.name, e)
            logger.warning(str(error))
            return self._failed(tool_call, str(error))

        if isinstance(result, ToolResult):
            return ToolOutput(
                call_id=tool_call.id,
                tool_name=tool_call.name,
                output=result.output,
                status="incomplete" if result.is_error else "completed",
            )

        return ToolOutput(call_id=tool_call.id, tool_name=tool_call.name, output=result)

    def rejection_output(self, tool_call: ToolCall) -> ToolOutput:
        """Build the result the model sees for a rejected call."""
        return ToolOutput(
            call_id=tool_call.id,
            tool_name=tool_call.name,
            output=REJECTION_MESSAGE.format(tool_name=tool_call.name),
        )

    def _failed(self, tool_call: ToolCall, message: str) -> ToolOutput:
        return ToolOutput(
            call_id=tool_call.id,
            tool_name=tool_call.name,
            output=message,
            status="incomplete",
        )

    def get_tool(self, name: str) -> BaseTool | None:
        return self.tools.get(name)
