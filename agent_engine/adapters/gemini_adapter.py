"""
Google Gemini (Generative Language API) implementation of LLMProvider.
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

GEMINI_MODELS = [
    "gemini-1.5-flash",
    "gemini-1.5-pro",
    "gemini-1.5-flash-8b",
    "gemini-pro",
    "gemini-pro-vision",
]


class GeminiAdapter(HttpLLMProvider):
    """Gemini models via generateContent."""

    provider_name = "gemini"
    display_name = "Gemini"
    default_base_url = "https://generativelanguage.googleapis.com"
    default_model = "gemini-1.5-flash"
    models = GEMINI_MODELS

    def _convert_turns(self, turns: Sequence[ConversationTurn]) -> List[Dict[str, Any]]:
        contents: List[Dict[str, Any]] = []
        for turn in turns:
            if turn.role == TurnRole.USER:
                contents.append({"role": "user", "parts": [{"text": turn.content}]})
            elif turn.role == TurnRole.ASSISTANT:
                parts: List[Dict[str, Any]] = []
                if turn.content:
                    parts.append({"text": turn.content})
                for tc in turn.tool_calls or []:
                    parts.append(
                        {
                            "functionCall": {
                                "name": tc.name,
                                "args": tc.arguments if isinstance(tc.arguments, dict) else {},
                            }
                        }
                    )
                contents.append({"role": "model", "parts": parts or [{"text": ""}]})
            elif turn.role == TurnRole.TOOL:
                try:
                    response = json.loads(turn.content)
                except ValueError:
                    response = {"result": turn.content}
                if not isinstance(response, dict):
                    response = {"result": response}
                part = {"functionResponse": {"name": turn.name or "", "response": response}}
                previous = contents[-1] if contents else None
                if previous is not None and previous["role"] == "function":
                    previous["parts"].append(part)
                else:
                    contents.append({"role": "function", "parts": [part]})
        return contents

    def _build_payload(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        temperature: Optional[float],
        max_tokens: Optional[int],
        tools: Optional[List[ToolDescriptor]],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"contents": self._convert_turns(turns)}
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        generation_config: Dict[str, Any] = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if max_tokens:
            generation_config["maxOutputTokens"] = max_tokens
        if generation_config:
            payload["generationConfig"] = generation_config

        if tools:
            payload["tools"] = [
                {
                    "functionDeclarations": [
                        {
                            "name": tool.name,
                            "description": tool.description,
                            "parameters": tool.parameters,
                        }
                        for tool in tools
                    ]
                }
            ]
        return payload

    @staticmethod
    def _usage(data: Dict[str, Any]) -> Optional[UsageInfo]:
        metadata = data.get("usageMetadata")
        if not metadata:
            return None
        return UsageInfo(
            prompt_tokens=metadata.get("promptTokenCount", 0),
            completion_tokens=metadata.get("candidatesTokenCount", 0),
            total_tokens=metadata.get("totalTokenCount", 0),
        )

    async def complete(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> ProviderReply:
        model_name = model or self.text_model
        payload = self._build_payload(system_prompt, turns, temperature, max_tokens, tools)
        data = await self._post_json(
            f"/v1beta/models/{model_name}:generateContent",
            payload,
            params={"key": self.api_key},
        )

        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderError("Gemini returned no candidates")

        candidate = candidates[0]
        text_parts: List[str] = []
        tool_calls: List[ToolCallRequest] = []
        for part in candidate.get("content", {}).get("parts", []):
            if "text" in part:
                text_parts.append(part["text"])
            elif "functionCall" in part:
                call = part["functionCall"]
                tool_calls.append(
                    ToolCallRequest(
                        id=f"call_{len(tool_calls)}",
                        name=call.get("name", ""),
                        arguments=parse_tool_arguments(call.get("args")),
                    )
                )

        return ProviderReply(
            turn=ConversationTurn.assistant("".join(text_parts), tool_calls),
            usage=self._usage(data),
            model=model_name,
            finish_reason=candidate.get("finishReason"),
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
        model_name = model or self.text_model
        payload = self._build_payload(system_prompt, turns, temperature, max_tokens, tools)

        finish_reason = None
        usage = None
        tool_index = 0
        try:
            async for chunk in self._stream_sse(
                f"/v1beta/models/{model_name}:streamGenerateContent",
                payload,
                params={"alt": "sse", "key": self.api_key},
            ):
                usage = self._usage(chunk) or usage
                for candidate in chunk.get("candidates") or []:
                    for part in candidate.get("content", {}).get("parts", []):
                        if part.get("text"):
                            yield {"type": "content", "delta": part["text"]}
                        elif "functionCall" in part:
                            call = part["functionCall"]
                            yield {
                                "type": "tool_call_delta",
                                "id": f"call_{tool_index}",
                                "index": tool_index,
                                "name": call.get("name", ""),
                                "arguments_delta": json.dumps(call.get("args") or {}),
                            }
                            tool_index += 1
                    if candidate.get("finishReason"):
                        finish_reason = candidate["finishReason"]

            if usage is not None:
                yield {"type": "usage", **usage.model_dump()}
            yield {"type": "message_end", "finish_reason": finish_reason or "STOP"}
        except AgentEngineError as e:
            yield error_event(e)
        except Exception as e:
            logger.exception(f"Error in Gemini complete_stream: {e}")
            yield error_event(ProviderError(str(e), e))
