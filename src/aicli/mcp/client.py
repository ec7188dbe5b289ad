"""Minimal Model Context Protocol client over stdio.

The client starts an MCP server as a child process, performs the
``initialize`` handshake and lists the server's tools. Messages are
newline-delimited JSON-RPC 2.0. The server command is run only after the
caller has passed it through the approval gate.
"""

import asyncio
import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from aicli import __version__
from aicli.exceptions import AICliError
from aicli.logging import Timer, get_logger
from aicli.mcp.models import (
    PROTOCOL_VERSION,
    InitializeResult,
    JSONRPCResponse,
    ServerSummary,
    ToolsListResult,
)

logger = get_logger("aicli.mcp")

# Upper bound on tools/list pages, in case a server keeps returning a cursor.
MAX_TOOL_PAGES = 20


class MCPError(AICliError):
    """Raised when an MCP server cannot be started or misbehaves."""

    pass


class MCPConnection:
    """JSON-RPC 2.0 connection to a child process, one JSON object per line."""

    def __init__(self, process: asyncio.subprocess.Process, timeout: float):
        self.process = process
        self.timeout = timeout
        self._request_id = 0

    async def _write(self, message: dict[str, Any]) -> None:
        assert self.process.stdin is not None
        self.process.stdin.write(json.dumps(message).encode("utf-8") + b"\n")
        try:
            await self.process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise MCPError("MCP server closed its input") from e

    async def _read_response(self, request_id: int, method: str) -> JSONRPCResponse:
        assert self.process.stdout is not None
        while True:
            try:
                line = await asyncio.wait_for(self.process.stdout.readline(), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                raise MCPError(f"MCP request '{method}' timed out after {self.timeout:g}s") from e
            if not line:
                raise MCPError(f"MCP server exited before answering '{method}'")

            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON line from MCP server", line=line[:200])
                continue

            # Notifications and server-initiated requests carry no matching id.
            if not isinstance(message, dict) or message.get("id") != request_id or "method" in message:
                logger.debug("Skipping unrelated MCP message", method=message.get("method") if isinstance(message, dict) else None)
                continue

            try:
                return JSONRPCResponse.model_validate(message)
            except ValidationError as e:
                raise MCPError(f"Malformed response to '{method}'") from e

    async def request(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send a request and wait for its result.

        Raises:
            MCPError: On timeout, early exit or a JSON-RPC error response
        """
        self._request_id += 1
        request_id = self._request_id
        await self._write({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or {}})

        response = await self._read_response(request_id, method)
        if response.error is not None:
            raise MCPError(f"MCP server rejected '{method}': {response.error.message} ({response.error.code})")
        return response.result or {}

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification; no response is expected."""
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params:
            message["params"] = params
        await self._write(message)

    async def close(self) -> None:
        """Close stdin and stop the server process."""
        if self.process.stdin is not None and not self.process.stdin.is_closing():
            self.process.stdin.close()
        if self.process.returncode is not None:
            return
        try:
            await asyncio.wait_for(self.process.wait(), timeout=1.0)
        except asyncio.TimeoutError:
            self.process.terminate()
            try:
                await asyncio.wait_for(self.process.wait(), timeout=2.0)
            except asyncio.TimeoutError:
                self.process.kill()
                await self.process.wait()


class MCPClient:
    """Starts an MCP server and asks it who it is and which tools it has.

    Attributes:
        argv: Server command as an argument list
        timeout: Seconds to wait for each response
    """

    def __init__(self, argv: list[str], timeout: float = 10.0, client_name: str = "ai-cli"):
        if not argv:
            raise MCPError("No MCP server command given")
        self.argv = list(argv)
        self.timeout = timeout
        self.client_name = client_name

    async def _start(self, cwd: Path) -> MCPConnection:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.argv,
                cwd=cwd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise MCPError(f"Failed to start MCP server '{self.argv[0]}': {e.strerror or e}") from e
        return MCPConnection(process, self.timeout)

    async def discover(self, cwd: Path) -> ServerSummary:
        """Run the handshake and list tools, then stop the server.

        Args:
            cwd: Working directory for the server process

        Returns:
            ServerSummary: Server identity and its tools

        Raises:
            MCPError: If the server cannot be started or answers badly
        """
        connection = await self._start(cwd)
        try:
            async with Timer(f"mcp discover ({self.argv[0]})", logger):
                return await self._handshake(connection)
        finally:
            await connection.close()

    async def _handshake(self, connection: MCPConnection) -> ServerSummary:
        raw = await connection.request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": self.client_name, "version": __version__},
            },
        )
        try:
            init = InitializeResult.model_validate(raw)
        except ValidationError as e:
            raise MCPError("Malformed initialize result from MCP server") from e
        await connection.notify("notifications/initialized")
        logger.info(
            "MCP server initialized",
            server=init.server_info.name,
            server_version=init.server_info.version,
            protocol=init.protocol_version,
        )

        result = ServerSummary(server=init.server_info, protocol_version=init.protocol_version)
        if not init.supports_tools:
            return result

        cursor: str | None = None
        for _ in range(MAX_TOOL_PAGES):
            raw = await connection.request("tools/list", {"cursor": cursor} if cursor else {})
            try:
                page = ToolsListResult.model_validate(raw)
            except ValidationError as e:
                raise MCPError("Malformed tools/list result from MCP server") from e
            result.tools.extend(page.tools)
            cursor = page.next_cursor
            if not cursor:
                break

        logger.info("Loaded MCP tools", count=len(result.tools))
        return result
