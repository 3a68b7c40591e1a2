from .server import MCPServerStreamableHttp, MCPTool

__all__ = ["MCPServerStreamableHttp", "MCPTool"]
