"""External tool servers reachable over MCP streamable HTTP.

A connected server exposes its tools as BaseTool adapters, so the runner
offers and invokes them exactly like local tools.
"""

from __future__ import annotations

from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client

from ..exceptions import AgentError
from ..logging import get_logger
from ..tools.base import BaseTool, ToolResult

logger = get_logger(__name__)


class MCPServerStreamableHttp:
    """Connection to one MCP server.

    Attributes:
        url: Server endpoint
        name: Label used in logs and connection status
        require_approval: Whether calls to this server's tools need approval
    """

    def __init__(self, url: str, name: str, require_approval: bool = False):
        self.url = url
        self.name = name
        self.require_approval = require_approval
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Open the transport and initialize the MCP session."""
        if self._session is not None:
            return

        stack = AsyncExitStack()
        try:
            read, write, _ = await stack.enter_async_context(streamablehttp_client(self.url))
            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
        except BaseException:
            await stack.aclose()
            raise

        self._stack = stack
        self._session = session
        logger.info(f"connected to MCP server '{self.name}' at {self.url}")

    async def close(self) -> None:
        stack, self._stack, self._session = self._stack, None, None
        if stack is not None:
            await stack.aclose()
            logger.info(f"closed MCP server '{self.name}'")

    async def list_tools(self) -> list[MCPTool]:
        """List the server's tools as BaseTool adapters.

        Raises:
            AgentError: If the server is not connected.
        """
        session = self._require_session()
        response = await session.list_tools()
        return [
            MCPTool(
                server=self,
                name=tool.name,
                description=tool.description or "",
                parameters=tool.inputSchema or {"type": "object", "properties": {}},
            )
            for tool in response.tools
        ]

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        session = self._require_session()
        result = await session.call_tool(tool_name, arguments)

        parts = []
        for content in result.content:
            if getattr(content, "text", None) is not None:
                parts.append(content.text)
            elif getattr(content, "data", None) is not None:
                parts.append(f"[Binary data: {len(content.data)} bytes]")
            else:
                parts.append(str(content))

        output: Any = "\n".join(parts)
        if not parts and getattr(result, "structuredContent", None):
            output = result.structuredContent
        return ToolResult(output=output, is_error=bool(result.isError))

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise AgentError(f"MCP server '{self.name}' is not connected")
        return self._session

    def __repr__(self) -> str:
        return f"MCPServerStreamableHttp(name={self.name!r}, url={self.url!r})"


class MCPTool(BaseTool):
    """A tool hosted by an MCP server."""

    def __init__(
        self,
        server: MCPServerStreamableHttp,
        name: str,
        description: str,
        parameters: dict[str, Any],
    ):
        self.server = server
        self._name = name
        self._description = description
        self._parameters = parameters
        self.REQUIRES_APPROVAL = server.require_approval

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def parameters(self) -> dict[str, Any]:
        return self._parameters

    async def execute(self, **kwargs) -> ToolResult:
        return await self.server.call_tool(self._name, kwargs)
