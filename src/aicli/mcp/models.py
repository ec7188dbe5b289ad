"""Pydantic models for the Model Context Protocol handshake.

Only the messages ``init`` needs are modelled: ``initialize`` and
``tools/list``. Field names follow the protocol's camelCase on the wire.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

PROTOCOL_VERSION = "2024-11-05"


class JSONRPCError(BaseModel):
    """Error object of a JSON-RPC 2.0 response."""

    code: int
    message: str
    data: Any = None


class JSONRPCResponse(BaseModel):
    """A JSON-RPC 2.0 response read from the server."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: dict[str, Any] | None = None
    error: JSONRPCError | None = None


class ServerInfo(BaseModel):
    """Name and version the server reports about itself."""

    name: str
    version: str = ""


class InitializeResult(BaseModel):
    """Result of the ``initialize`` request."""

    model_config = ConfigDict(populate_by_name=True)

    protocol_version: str = Field(..., alias="protocolVersion")
    capabilities: dict[str, Any] = Field(default_factory=dict)
    server_info: ServerInfo = Field(..., alias="serverInfo")

    @property
    def supports_tools(self) -> bool:
        return "tools" in self.capabilities


class MCPTool(BaseModel):
    """A tool offered by an MCP server."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")


class ToolsListResult(BaseModel):
    """One page of the ``tools/list`` result."""

    model_config = ConfigDict(populate_by_name=True)

    tools: list[MCPTool] = Field(default_factory=list)
    next_cursor: str | None = Field(default=None, alias="nextCursor")


class ServerSummary(BaseModel):
    """What ``init`` learns from starting an MCP server once."""

    server: ServerInfo
    protocol_version: str
    tools: list[MCPTool] = Field(default_factory=list)

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.tools]
