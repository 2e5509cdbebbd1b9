"""StdioTransport - MCP transport using a child process.

Spawns the server and exchanges newline-delimited JSON-RPC messages over
its stdin and stdout. A reader task routes responses to their requests by
id and a second task logs the server's stderr.
"""

import asyncio
import json
import logging
import os
import shlex
from typing import Any, Dict, List, Optional

from agent_engine.adapters.mcp.jsonrpc import (
    PendingReplies,
    build_notification,
    build_request,
    initialize_params,
    parse_server_info,
    parse_tool_list,
    parse_tool_result,
    unwrap_response,
)
from agent_engine.domains.mcp import McpServerInfo, McpToolDefinition, McpToolResult
from agent_engine.interfaces.providers.mcp_transport import (
    McpConnectionError,
    McpTimeoutError,
    McpTransport,
)

logger = logging.getLogger(__name__)

# Longest stdout line accepted from a server
STDOUT_LINE_LIMIT = 16 * 1024 * 1024

DEFAULT_TIMEOUT = 30.0
DEFAULT_INIT_TIMEOUT = 10.0


class StdioTransport(McpTransport):
    """MCP transport over a subprocess's stdin/stdout.

    Attributes:
        command: Command and arguments to spawn the MCP server
        environment: Extra environment variables for the subprocess
        cwd: Working directory for the subprocess
        timeout: Default timeout for operations (seconds)
    """

    def __init__(
        self,
        command: List[str],
        environment: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if not command:
            raise ValueError("Command cannot be empty")

        self._command = command
        self._environment = environment or {}
        self._cwd = cwd
        self._timeout = timeout

        self._process: Optional[asyncio.subprocess.Process] = None
        self._request_id = 0
        self._server_info: Optional[McpServerInfo] = None
        self._pending = PendingReplies()
        self._stdout_task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_command_line(
        cls, command_line: str, timeout: float = DEFAULT_TIMEOUT
    ) -> "StdioTransport":
        return cls(command=shlex.split(command_line), timeout=timeout)

    async def connect(self) -> McpServerInfo:
        if self._process is not None:
            raise McpConnectionError("Transport already connected")

        env = {**os.environ, **self._environment}

        try:
            logger.debug(f"Spawning MCP server: {' '.join(self._command)}")
            self._process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=self._cwd,
                limit=STDOUT_LINE_LIMIT,
            )
        except FileNotFoundError as e:
            raise McpConnectionError(f"MCP server command not found: {self._command[0]}", e) from e
        except OSError as e:
            raise McpConnectionError(f"Failed to spawn MCP server: {e}", e) from e

        self._stdout_task = asyncio.create_task(self._read_stdout())
        self._stderr_task = asyncio.create_task(self._read_stderr())

        try:
            init_response = await self._send_request(
                "initialize", initialize_params(), timeout=DEFAULT_INIT_TIMEOUT
            )
            self._server_info = parse_server_info(init_response)
            await self._write(build_notification("notifications/initialized", {}))
            logger.info(
                f"MCP transport connected to {self._server_info.name} v{self._server_info.version}"
            )
            return self._server_info
        except Exception:
            await self.disconnect()
            raise

    async def disconnect(self) -> None:
        """Terminate the subprocess. Safe to call multiple times."""
        for task in (self._stdout_task, self._stderr_task):
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._stdout_task = None
        self._stderr_task = None
        self._pending.fail_all("Transport disconnected")

        if self._process:
            try:
                self._process.terminate()
                try:
                    await asyncio.wait_for(self._process.wait(), timeout=2.0)
                except asyncio.TimeoutError:
                    self._process.kill()
                    await self._process.wait()
            except ProcessLookupError:
                pass
            finally:
                self._process = None
                self._server_info = None
                logger.debug("MCP transport disconnected")

    async def list_tools(self) -> List[McpToolDefinition]:
        self._ensure_connected()
        response = await self._send_request("tools/list", {})
        return parse_tool_list(response, repr(self))

    async def call_tool(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> McpToolResult:
        self._ensure_connected()
        response = await self._send_request(
            "tools/call",
            {"name": tool_name, "arguments": arguments},
            timeout=timeout or self._timeout,
        )
        return parse_tool_result(response)

    @property
    def is_connected(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def server_info(self) -> Optional[McpServerInfo]:
        return self._server_info

    def _ensure_connected(self) -> None:
        if not self.is_connected:
            raise McpConnectionError("Transport not connected")

    async def _write(self, message: Dict[str, Any]) -> None:
        if not self._process or not self._process.stdin:
            raise McpConnectionError("Transport not connected")

        line = json.dumps(message) + "\n"
        try:
            async with self._write_lock:
                self._process.stdin.write(line.encode("utf-8"))
                await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise McpConnectionError("MCP server connection lost", e) from e

    async def _send_request(
        self,
        method: str,
        params: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        self._request_id += 1
        request_id = self._request_id
        future = self._pending.register(request_id)
        effective_timeout = timeout or self._timeout
        logger.debug(f"MCP request: {method} (id={request_id})")

        try:
            await self._write(build_request(request_id, method, params))
            response = await asyncio.wait_for(future, timeout=effective_timeout)
        except asyncio.TimeoutError as e:
            raise McpTimeoutError(
                f"MCP server did not respond within {effective_timeout}s", e
            ) from e
        finally:
            self._pending.discard(request_id)

        logger.debug(f"MCP response received for id={request_id}")
        return unwrap_response(response)

    async def _read_stdout(self) -> None:
        """Background task routing stdout lines to pending requests."""
        if not self._process or not self._process.stdout:
            return

        try:
            while True:
                try:
                    line = await self._process.stdout.readline()
                except ValueError as e:
                    logger.warning(f"Dropping oversized line from MCP server: {e}")
                    continue
                if not line:
                    break
                try:
                    message = json.loads(line.decode("utf-8"))
                except ValueError:
                    logger.warning(f"Invalid JSON from MCP server: {line[:100]!r}")
                    continue
                if isinstance(message, dict):
                    self._pending.resolve(message)
        finally:
            returncode = self._process.returncode if self._process else None
            self._pending.fail_all(f"MCP server closed stdout (exit code {returncode})")

    async def _read_stderr(self) -> None:
        if not self._process or not self._process.stderr:
            return

        try:
            while True:
                line = await self._process.stderr.readline()
                if not line:
                    break
                logger.warning(f"MCP stderr: {line.decode('utf-8').rstrip()}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Error reading MCP stderr: {e}")

    def __repr__(self) -> str:
        status = "connected" if self.is_connected else "disconnected"
        cmd = " ".join(self._command)
        return f"<StdioTransport({cmd}) [{status}]>"
