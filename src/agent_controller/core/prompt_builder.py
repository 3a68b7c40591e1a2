"""Prompt construction and formatting utilities.

This module handles the creation of the agent instructions and of the
unified messages exchanged with the model.
"""

from ..prompts import DEFAULT_SYSTEM_PROMPT, TOOL_USAGE_GUIDELINES
from ..run_events import ToolOutput
from ..types import MessageRole, UnifiedMessage
from ..utils.formatting import stringify_output


class PromptBuilder:
    """Constructs instructions and messages for the agent.

    This class handles the enhancement of the configured system prompt when
    tools are available and the creation of unified messages for different
    roles.
    """

    def __init__(self, base_prompt: str | None = None):
        """Initialize the prompt builder.

        Args:
            base_prompt: The configured system prompt. Empty or missing
                prompts fall back to a default.
        """
        self.base_prompt = base_prompt or ""

    def build_instructions(self, tools_enabled: bool) -> str:
        """Build the system instructions for a turn.

        Args:
            tools_enabled: Whether the model will be offered tools.

        Returns:
            The base prompt, extended with tool usage guidelines when tools
            are enabled.
        """
        if tools_enabled:
            return self.base_prompt + TOOL_USAGE_GUIDELINES
        return self.base_prompt or DEFAULT_SYSTEM_PROMPT

    def build_system_message(self, content: str) -> UnifiedMessage:
        return UnifiedMessage(role=MessageRole.SYSTEM, content=content)

    def build_user_message(self, content: str) -> UnifiedMessage:
        return UnifiedMessage(role=MessageRole.USER, content=content)

    def build_tool_result(self, output: ToolOutput) -> UnifiedMessage:
        """Create a tool result message from a tool output.

        Args:
            output: The tool output item.

        Returns:
            A UnifiedMessage with TOOL role.
        """
        return UnifiedMessage(
            role=MessageRole.TOOL,
            content=stringify_output(output.output),
            tool_call_id=output.call_id,
            name=output.tool_name,
            is_error=output.is_error,
        )
