"""JSON-RPC 2.0 framing shared by the MCP transports."""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from agent_engine.domains.mcp import McpServerInfo, McpToolDefinition, McpToolResult
from agent_engine.interfaces.providers.mcp_transport import (
    McpConnectionError,
    McpProtocolError,
)

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
CLIENT_INFO = {"name": "agent-engine", "version": "1.0.0"}


def initialize_params() -> Dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {"tools": {}},
        "clientInfo": dict(CLIENT_INFO),
    }


def build_request(
    request_id: int, method: str, params: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    request: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        request["params"] = params
    return request


def build_notification(
    method: str, params: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    notification: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        notification["params"] = params
    return notification


def parse_sse_payload(text: str) -> Dict[str, Any]:
    """Extract the JSON body of the first ``data:`` line of an SSE reply."""
    for line in text.split("\n"):
        line = line.strip()
        if line.startswith("data:"):
            json_str = line[5:].strip()
            if json_str:
                try:
                    return json.loads(json_str)
                except json.JSONDecodeError as e:
                    raise McpProtocolError(f"Failed to parse SSE JSON data: {e}", e) from e

    raise McpProtocolError(f"No data found in SSE response: {text[:200]}")


def unwrap_response(data: Any) -> Dict[str, Any]:
    """Return the ``result`` of a JSON-RPC response or raise its error."""
    if not isinstance(data, dict):
        raise McpProtocolError(f"Expected a JSON-RPC object, got {type(data).__name__}")
    if "error" in data and data["error"] is not None:
        error = data["error"]
        if not isinstance(error, dict):
            raise McpProtocolError(f"MCP error: {error}")
        raise McpProtocolError(
            f"MCP error {error.get('code', 'unknown')}: {error.get('message', 'Unknown error')}"
        )
    result = data.get("result") or {}
    if not isinstance(result, dict):
        raise McpProtocolError(f"Expected a result object, got {type(result).__name__}")
    return result


def parse_server_info(result: Dict[str, Any]) -> McpServerInfo:
    try:
        return McpServerInfo.from_dict(result)
    except (ValidationError, TypeError, AttributeError) as e:
        raise McpProtocolError(f"Malformed initialize result: {e}", e) from e


def parse_tool_list(result: Dict[str, Any], server: str = "") -> List[McpToolDefinition]:
    """Tool definitions of a ``tools/list`` result.

    Malformed entries are logged and skipped; the rest of the list is kept.
    """
    entries = result.get("tools") or []
    if not isinstance(entries, list):
        raise McpProtocolError(f"Expected a list of tools, got {type(entries).__name__}")

    tools = []
    for entry in entries:
        try:
            tools.append(McpToolDefinition.from_dict(entry))
        except (ValidationError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping malformed tool definition from {server or 'server'}: {e}")
    return tools


def parse_tool_result(result: Dict[str, Any]) -> McpToolResult:
    try:
        return McpToolResult.from_dict(result)
    except (ValidationError, TypeError, AttributeError) as e:
        raise McpProtocolError(f"Malformed tool result: {e}", e) from e


class PendingReplies:
    """Futures awaiting responses, keyed by request id.

    Used by transports whose replies arrive on a separate reader task.
    """

    def __init__(self):
        self._futures: Dict[Any, "asyncio.Future[Dict[str, Any]]"] = {}

    def __len__(self) -> int:
        return len(self._futures)

    def register(self, request_id: Any) -> "asyncio.Future[Dict[str, Any]]":
        future = asyncio.get_running_loop().create_future()
        self._futures[request_id] = future
        return future

    def discard(self, request_id: Any) -> None:
        self._futures.pop(request_id, None)

    def resolve(self, message: Dict[str, Any]) -> bool:
        """Complete the future matching a response. Returns False for
        notifications and unknown ids."""
        if "id" not in message or ("result" not in message and "error" not in message):
            return False
        try:
            future = self._futures.pop(message["id"], None)
        except TypeError:
            logger.warning(f"Dropping response with unusable id {message['id']!r}")
            return False
        if future is None:
            logger.debug(f"Dropping response for unknown request id {message['id']}")
            return False
        if not future.done():
            future.set_result(message)
        return True

    def fail_all(self, reason: str) -> None:
        futures, self._futures = self._futures, {}
        for future in futures.values():
            if not future.done():
                future.set_exception(McpConnectionError(reason))
