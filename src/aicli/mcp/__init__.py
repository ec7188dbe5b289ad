"""Model Context Protocol client used by ``init`` to check a server."""

from aicli.mcp.client import MCPClient, MCPConnection, MCPError
from aicli.mcp.models import MCPTool, ServerSummary, ServerInfo

__all__ = [
    "MCPClient",
    "MCPConnection",
    "MCPError",
    "MCPTool",
    "ServerSummary",
    "ServerInfo",
]
