"""MCP SSE transport (HTTP with server-sent events).

The client opens a long-lived GET stream. The server first sends an
``endpoint`` event naming the URL that accepts JSON-RPC POSTs, then
delivers every response as a ``message`` event on the stream. Responses
are matched to requests by id.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import httpx

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
    McpProtocolError,
    McpTimeoutError,
    McpTransport,
    McpTransportError,
)

logger = logging.getLogger(__name__)


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[Tuple[str, str]]:
    """Group SSE lines into ``(event, data)`` pairs."""
    event = "message"
    data: List[str] = []
    async for line in lines:
        if line == "":
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class SseTransport(McpTransport):
    """Legacy HTTP+SSE transport for remote MCP servers."""

    def __init__(
        self,
        server_url: str,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._sse_url = server_url
        self._timeout = timeout
        self._headers = headers or {}
        self._injected_client = http_client
        self._client: Optional[httpx.AsyncClient] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._endpoint_url: Optional[str] = None
        self._endpoint_ready: Optional[asyncio.Event] = None
        self._pending = PendingReplies()
        self._server_info: Optional[McpServerInfo] = None
        self._request_id = 0
        self._stream_error: Optional[Exception] = None

    async def connect(self) -> McpServerInfo:
        if self.is_connected and self._server_info is not None:
            return self._server_info

        logger.info(f"Opening SSE stream to MCP server: {self._sse_url}")
        self._client = self._injected_client or httpx.AsyncClient(
            headers=self._headers, timeout=httpx.Timeout(self._timeout, read=None)
        )
        self._endpoint_ready = asyncio.Event()
        self._stream_error = None
        self._reader_task = asyncio.create_task(self._read_stream())

        try:
            await self._wait_for_endpoint()
            init_result = await self._send_request("initialize", initialize_params())
            self._server_info = parse_server_info(init_result)
            await self._post(build_notification("notifications/initialized"))
            logger.info(
                f"Connected to MCP server: {self._server_info.name} v{self._server_info.version}"
            )
            return self._server_info
        except Exception as e:
            await self.disconnect()
            if isinstance(e, McpTransportError):
                raise
            raise McpConnectionError(f"Failed to connect to MCP server: {e}", e) from e

    async def _wait_for_endpoint(self) -> None:
        endpoint_wait = asyncio.create_task(self._endpoint_ready.wait())
        try:
            done, _ = await asyncio.wait(
                {endpoint_wait, self._reader_task},
                timeout=self._timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if not endpoint_wait.done():
                endpoint_wait.cancel()

        if self._endpoint_url is not None:
            return
        if not done:
            raise McpTimeoutError(
                f"No endpoint event from {self._sse_url} within {self._timeout}s"
            )
        raise McpConnectionError(
            f"SSE stream closed before endpoint event: {self._stream_error or 'no data'}",
            self._stream_error,
        )

    async def _read_stream(self) -> None:
        """Background task consuming the SSE stream."""
        try:
            async with self._client.stream(
                "GET", self._sse_url, headers={"Accept": "text/event-stream"}
            ) as response:
                if response.status_code != 200:
                    raise McpConnectionError(
                        f"SSE endpoint returned HTTP {response.status_code}"
                    )
                async for event, data in iter_sse_events(response.aiter_lines()):
                    self._dispatch(event, data)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"SSE stream from {self._sse_url} ended: {e}")
            self._stream_error = e
        finally:
            self._pending.fail_all(f"SSE stream from {self._sse_url} closed")

    def _dispatch(self, event: str, data: str) -> None:
        if event == "endpoint":
            self._endpoint_url = urljoin(self._sse_url, data.strip())
            logger.debug(f"MCP message endpoint: {self._endpoint_url}")
            self._endpoint_ready.set()
            return
        if event != "message":
            return
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse SSE message: {data[:100]}")
            return
        if isinstance(message, dict) and not self._pending.resolve(message):
            logger.debug(f"Ignoring server message: {message.get('method')}")

    async def _post(self, message: Dict[str, Any]) -> None:
        if self._client is None or self._endpoint_url is None:
            raise McpConnectionError("Not connected to MCP server")
        try:
            response = await self._client.post(
                self._endpoint_url, json=message, timeout=self._timeout
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise McpTimeoutError(f"Request timed out after {self._timeout}s", e) from e
        except httpx.HTTPStatusError as e:
            raise McpProtocolError(
                f"HTTP error {e.response.status_code}: {e.response.text}", e
            ) from e
        except httpx.RequestError as e:
            raise McpConnectionError(f"Connection error: {e}", e) from e

    async def _send_request(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        if not self._reader_task or self._reader_task.done():
            raise McpConnectionError("SSE stream is not open")

        self._request_id += 1
        request_id = self._request_id
        future = self._pending.register(request_id)
        effective_timeout = timeout or self._timeout
        logger.debug(f"MCP request: {method} (id={request_id})")

        try:
            await self._post(build_request(request_id, method, params))
            response = await asyncio.wait_for(future, timeout=effective_timeout)
        except asyncio.TimeoutError as e:
            raise McpTimeoutError(
                f"MCP server did not respond within {effective_timeout}s", e
            ) from e
        finally:
            self._pending.discard(request_id)

        return unwrap_response(response)

    async def disconnect(self) -> None:
        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        self._pending.fail_all("Transport disconnected")
        self._endpoint_url = None
        self._server_info = None
        if self._client is not None:
            if self._client is not self._injected_client:
                await self._client.aclose()
            self._client = None
        logger.debug(f"Disconnected from MCP server: {self._sse_url}")

    async def list_tools(self) -> List[McpToolDefinition]:
        result = await self._send_request("tools/list", {})
        return parse_tool_list(result, repr(self))

    async def call_tool(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> McpToolResult:
        result = await self._send_request(
            "tools/call", {"name": tool_name, "arguments": arguments}, timeout=timeout
        )
        return parse_tool_result(result)

    @property
    def is_connected(self) -> bool:
        return (
            self._reader_task is not None
            and not self._reader_task.done()
            and self._endpoint_url is not None
        )

    @property
    def server_info(self) -> Optional[McpServerInfo]:
        return self._server_info

    def __repr__(self) -> str:
        status = "connected" if self.is_connected else "disconnected"
        return f"<SseTransport({self._sse_url}) [{status}]>"
