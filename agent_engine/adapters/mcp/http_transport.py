"""MCP HTTP transport for remote tool servers.

Implements the streamable HTTP transport: every JSON-RPC message is an
HTTP POST to ``{endpoint}/mcp`` and the reply is either plain JSON or a
single SSE-formatted event.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from agent_engine.adapters.mcp.jsonrpc import (
    build_notification,
    build_request,
    initialize_params,
    parse_sse_payload,
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


class HttpTransport(McpTransport):
    """HTTP transport for remote MCP servers.

    Usage:
        transport = HttpTransport(server_url="http://localhost:9000")
        await transport.connect()
        tools = await transport.list_tools()
        result = await transport.call_tool("my_tool", {"arg": "value"})
        await transport.disconnect()
    """

    def __init__(
        self,
        server_url: str,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize HTTP transport.

        Args:
            server_url: Base URL of the MCP server (e.g., http://localhost:9000)
            timeout: Request timeout in seconds
            headers: Optional additional HTTP headers (e.g., for authentication)
            http_client: Optional preconfigured client, mainly for tests
        """
        url = server_url.rstrip("/")
        self._rpc_url = url if url.endswith("/mcp") else f"{url}/mcp"
        self._server_url = url
        self._timeout = timeout
        self._headers = headers or {}
        self._injected_client = http_client
        self._client: Optional[httpx.AsyncClient] = None
        self._server_info: Optional[McpServerInfo] = None
        self._is_connected = False
        self._request_id = 0

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    def _decode(self, response: httpx.Response) -> Dict[str, Any]:
        content_type = response.headers.get("content-type", "")
        response_text = response.text
        if "text/event-stream" in content_type or response_text.startswith("event:"):
            return parse_sse_payload(response_text)
        try:
            return response.json()
        except ValueError as e:
            raise McpProtocolError(f"Invalid JSON response: {response_text[:100]}", e) from e

    async def _post(self, message: Dict[str, Any], timeout: float) -> httpx.Response:
        if self._client is None or not self._is_connected:
            raise McpConnectionError("Not connected to MCP server")

        try:
            response = await self._client.post(self._rpc_url, json=message, timeout=timeout)
            response.raise_for_status()
            return response
        except httpx.TimeoutException as e:
            raise McpTimeoutError(f"Request timed out after {timeout}s", e) from e
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
        """Send a JSON-RPC request and return its result.

        Raises:
            McpConnectionError: If not connected or connection fails
            McpProtocolError: If response contains an error
            McpTimeoutError: If request times out
        """
        logger.debug(f"Sending MCP request: {method}")
        request = build_request(self._next_request_id(), method, params)
        response = await self._post(request, timeout or self._timeout)
        return unwrap_response(self._decode(response))

    async def connect(self) -> McpServerInfo:
        """Create the HTTP client and perform the initialize handshake."""
        if self._is_connected and self._server_info is not None:
            return self._server_info

        logger.info(f"Connecting to remote MCP server: {self._server_url}")

        self._client = self._injected_client or httpx.AsyncClient(
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json, text/event-stream",
                **self._headers,
            },
            timeout=self._timeout,
        )

        try:
            self._is_connected = True

            init_result = await self._send_request("initialize", initialize_params())
            self._server_info = parse_server_info(init_result)

            try:
                await self._post(build_notification("notifications/initialized"), 5.0)
            except McpTransportError as e:
                logger.debug(f"Initialized notification failed (may be expected): {e}")

            logger.info(
                f"Connected to MCP server: {self._server_info.name} v{self._server_info.version}"
            )
            return self._server_info

        except Exception as e:
            await self.disconnect()
            if isinstance(e, McpTransportError):
                raise
            raise McpConnectionError(f"Failed to connect to MCP server: {e}", e) from e

    async def disconnect(self) -> None:
        self._is_connected = False
        self._server_info = None
        if self._client is not None:
            if self._client is not self._injected_client:
                await self._client.aclose()
            self._client = None
        logger.debug(f"Disconnected from MCP server: {self._server_url}")

    async def list_tools(self) -> List[McpToolDefinition]:
        result = await self._send_request("tools/list", {})
        return parse_tool_list(result, repr(self))

    async def call_tool(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> McpToolResult:
        effective_timeout = timeout or self._timeout
        logger.debug(f"Calling remote tool '{tool_name}' with timeout {effective_timeout}s")
        result = await self._send_request(
            "tools/call",
            {"name": tool_name, "arguments": arguments},
            timeout=effective_timeout,
        )
        return parse_tool_result(result)

    @property
    def is_connected(self) -> bool:
        return self._is_connected and self._client is not None

    @property
    def server_info(self) -> Optional[McpServerInfo]:
        return self._server_info

    @property
    def server_url(self) -> str:
        return self._server_url

    def __repr__(self) -> str:
        status = "connected" if self.is_connected else "disconnected"
        return f"<HttpTransport({self._server_url}) [{status}]>"
