"""
Anthropic Messages API implementation of LLMProvider.
"""
import json
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence

from agent_engine.adapters.common import error_event, parse_tool_arguments
from agent_engine.adapters.http_provider import HttpLLMProvider
from agent_engine.domains.execution import (
    ConversationTurn,
    ProviderReply,
    ToolCallRequest,
    TurnRole,
    UsageInfo,
)
from agent_engine.domains.tools import ToolDescriptor
from agent_engine.exceptions import AgentEngineError, ProviderError

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 1000

ANTHROPIC_MODELS = [
    "claude-3-5-sonnet-20241022",
    "claude-3-5-haiku-20241022",
    "claude-3-opus-20240229",
    "claude-3-sonnet-20240229",
    "claude-3-haiku-20240307",
]


class AnthropicAdapter(HttpLLMProvider):
    """Claude models via the Anthropic Messages API."""

    provider_name = "anthropic"
    display_name = "Anthropic"
    default_base_url = "https://api.anthropic.com"
    default_model = "claude-3-5-sonnet-20241022"
    models = ANTHROPIC_MODELS

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def _convert_turns(self, turns: Sequence[ConversationTurn]) -> List[Dict[str, Any]]:
        """Translate the transcript to Anthropic messages.

        Tool results are user messages carrying ``tool_result`` blocks, and
        consecutive results are merged into one message.
        """
        messages: List[Dict[str, Any]] = []
        for turn in turns:
            if turn.role == TurnRole.USER:
                messages.append({"role": "user", "content": turn.content})
            elif turn.role == TurnRole.ASSISTANT:
                blocks: List[Dict[str, Any]] = []
                if turn.content:
                    blocks.append({"type": "text", "text": turn.content})
                for tc in turn.tool_calls or []:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": tc.id,
                            "name": tc.name,
                            "input": tc.arguments if isinstance(tc.arguments, dict) else {},
                        }
                    )
                messages.append({"role": "assistant", "content": blocks or turn.content})
            elif turn.role == TurnRole.TOOL:
                block = {
                    "type": "tool_result",
                    "tool_use_id": turn.tool_call_id or "",
                    "content": turn.content,
                }
                previous = messages[-1] if messages else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                ):
                    previous["content"].append(block)
                else:
                    messages.append({"role": "user", "content": [block]})
        return messages

    def _build_payload(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        model: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
        tools: Optional[List[ToolDescriptor]],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model or self.text_model,
            "messages": self._convert_turns(turns),
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
        }
        if system_prompt:
            payload["system"] = system_prompt
        if temperature is not None:
            payload["temperature"] = temperature
        if tools:
            payload["tools"] = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.parameters,
                }
                for tool in tools
            ]
        return payload

    async def complete(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> ProviderReply:
        payload = self._build_payload(
            system_prompt, turns, model, temperature, max_tokens, tools
        )
        data = await self._post_json("/v1/messages", payload)

        if data.get("type") == "error":
            error = data.get("error", {})
            raise ProviderError(f"Anthropic API error: {error.get('message', error)}")

        text_parts: List[str] = []
        tool_calls: List[ToolCallRequest] = []
        for block in data.get("content", []):
            if block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                tool_calls.append(
                    ToolCallRequest(
                        id=block.get("id") or f"call_{len(tool_calls)}",
                        name=block.get("name", ""),
                        arguments=parse_tool_arguments(block.get("input")),
                    )
                )

        usage = None
        if data.get("usage"):
            input_tokens = data["usage"].get("input_tokens", 0)
            output_tokens = data["usage"].get("output_tokens", 0)
            usage = UsageInfo(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            )

        return ProviderReply(
            turn=ConversationTurn.assistant("".join(text_parts), tool_calls),
            usage=usage,
            model=data.get("model"),
            finish_reason=data.get("stop_reason"),
        )

    async def complete_stream(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        payload = self._build_payload(
            system_prompt, turns, model, temperature, max_tokens, tools
        )
        payload["stream"] = True

        input_tokens = 0
        output_tokens = 0
        finish_reason = None
        tool_index = -1
        try:
            async for event in self._stream_sse("/v1/messages", payload):
                event_type = event.get("type")
                if event_type == "message_start":
                    usage = event.get("message", {}).get("usage", {})
                    input_tokens = usage.get("input_tokens", 0)
                elif event_type == "content_block_start":
                    block = event.get("content_block", {})
                    if block.get("type") == "tool_use":
                        tool_index += 1
                        yield {
                            "type": "tool_call_delta",
                            "id": block.get("id"),
                            "index": tool_index,
                            "name": block.get("name"),
                            "arguments_delta": "",
                        }
                elif event_type == "content_block_delta":
                    delta = event.get("delta", {})
                    if delta.get("type") == "text_delta":
                        yield {"type": "content", "delta": delta.get("text", "")}
                    elif delta.get("type") == "input_json_delta":
                        yield {
                            "type": "tool_call_delta",
                            "id": None,
                            "index": max(tool_index, 0),
                            "name": None,
                            "arguments_delta": delta.get("partial_json", ""),
                        }
                elif event_type == "message_delta":
                    finish_reason = event.get("delta", {}).get("stop_reason") or finish_reason
                    output_tokens = event.get("usage", {}).get("output_tokens", output_tokens)
                elif event_type == "error":
                    error = event.get("error", {})
                    yield error_event(
                        ProviderError(f"Anthropic API error: {error.get('message', json.dumps(error))}")
                    )
                    return

            yield {
                "type": "usage",
                "prompt_tokens": input_tokens,
                "completion_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
            }
            yield {"type": "message_end", "finish_reason": finish_reason or "end_turn"}
        except AgentEngineError as e:
            yield error_event(e)
        except Exception as e:
            logger.exception(f"Error in Anthropic complete_stream: {e}")
            yield error_event(ProviderError(str(e), e))
