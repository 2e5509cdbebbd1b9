"""
Shared fixtures for the Agent Engine test suite.

Provides a scripted LLM provider and an in-memory MCP transport so the
engine, resolver and gateway can be exercised without any network.
"""
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence

import pytest

from agent_engine.domains.execution import (
    ConversationTurn,
    ProviderReply,
    ToolCallRequest,
    UsageInfo,
)
from agent_engine.domains.mcp import (
    McpContent,
    McpServerInfo,
    McpToolDefinition,
    McpToolResult,
)
from agent_engine.domains.tools import ToolDescriptor
from agent_engine.interfaces.providers.llm import LLMProvider
from agent_engine.interfaces.providers.mcp_transport import (
    McpConnectionError,
    McpTransport,
)


def tool_reply(*calls: ToolCallRequest, content: str = "") -> ProviderReply:
    return ProviderReply(
        turn=ConversationTurn.assistant(content, list(calls)),
        usage=UsageInfo(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


def text_reply(content: str) -> ProviderReply:
    return ProviderReply(
        turn=ConversationTurn.assistant(content),
        usage=UsageInfo(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


class ScriptedProvider(LLMProvider):
    """Provider replaying a fixed list of replies.

    Once the script is exhausted the last reply repeats. An exception in
    the script is raised instead of returned.
    """

    def __init__(self, script: List[Any], provider_name: str = "scripted"):
        self.script = list(script)
        self.provider_name = provider_name
        self.calls: List[Dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self.provider_name

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def _next(self) -> Any:
        index = min(len(self.calls) - 1, len(self.script) - 1)
        item = self.script[index]
        if isinstance(item, Exception):
            raise item
        return item

    async def complete(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> ProviderReply:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "turns": list(turns),
                "model": model,
                "tools": tools,
            }
        )
        return self._next()

    async def complete_stream(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "turns": list(turns),
                "model": model,
                "tools": tools,
            }
        )
        item = self.script[min(len(self.calls) - 1, len(self.script) - 1)]
        for event in item:
            yield event

    def list_models(self) -> List[str]:
        return ["scripted-model"]


class FakeTransport(McpTransport):
    """In-memory MCP transport serving a fixed set of tools."""

    def __init__(
        self,
        tools: Optional[List[McpToolDefinition]] = None,
        results: Optional[Dict[str, McpToolResult]] = None,
        fail_connect: bool = False,
        server_name: str = "fake",
    ):
        self.tools = tools or []
        self.results = results or {}
        self.fail_connect = fail_connect
        self.server_name = server_name
        self.connected = False
        self.call_error: Optional[Exception] = None
        self.calls: List[Dict[str, Any]] = []
        self.connect_attempts = 0

    async def connect(self) -> McpServerInfo:
        self.connect_attempts += 1
        if self.fail_connect:
            raise McpConnectionError(f"Cannot reach {self.server_name}")
        self.connected = True
        return McpServerInfo(name=self.server_name, version="1.0.0")

    async def disconnect(self) -> None:
        self.connected = False

    async def list_tools(self) -> List[McpToolDefinition]:
        if not self.connected:
            raise McpConnectionError("Not connected")
        return list(self.tools)

    async def call_tool(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> McpToolResult:
        self.calls.append({"name": tool_name, "arguments": arguments})
        if self.call_error is not None:
            raise self.call_error
        if tool_name in self.results:
            return self.results[tool_name]
        return McpToolResult(content=[McpContent(type="text", text=f"{tool_name} ok")])

    @property
    def is_connected(self) -> bool:
        return self.connected

    @property
    def server_info(self) -> Optional[McpServerInfo]:
        return McpServerInfo(name=self.server_name) if self.connected else None


def remote_tool(name: str, description: str = "") -> McpToolDefinition:
    return McpToolDefinition(
        name=name,
        description=description or f"Remote {name}",
        input_schema={"type": "object", "properties": {"q": {"type": "string"}}},
    )


@pytest.fixture
def calculator_call():
    return ToolCallRequest(id="call_1", name="calculator", arguments={"expression": "2+2"})
