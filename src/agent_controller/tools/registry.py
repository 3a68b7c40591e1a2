"""Registry of tools the agent can be given."""

from ..logging import get_logger
from .base import BaseTool

logger = get_logger(__name__)


class ToolRegistry:
    """Name-indexed collection of tools.

    The agent manager looks tools up here by the names the user selected.
    """

    def __init__(self, tools: list[BaseTool] | None = None):
        self._tools: dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        """Add a tool, replacing any tool registered under the same name."""
        if tool.name in self._tools:
            logger.info(f"replacing registered tool '{tool.name}'")
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        """Remove a tool.

        Returns:
            True if a tool was removed.
        """
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    @property
    def tools(self) -> dict[str, BaseTool]:
        """Read-only copy of the registered tools."""
        return dict(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
