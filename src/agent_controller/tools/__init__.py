"""Tool interfaces for the agent controller.

Concrete tools are supplied by the application through a ToolRegistry or
by external MCP servers.
"""

from .base import BaseTool, ToolResult
from .registry import ToolRegistry

__all__ = ["BaseTool", "ToolResult", "ToolRegistry"]
