"""
LLM provider adapters for OpenAI-compatible services.

These adapters implement the LLMProvider interface on top of the OpenAI
chat completions API, with native function calling.
"""

import logging
from typing import (
    Any,
    AsyncGenerator,
    Dict,
    List,
    Optional,
    Sequence,
)

import logfire
from openai import (
    APIConnectionError,
    AsyncOpenAI,
    AuthenticationError,
    OpenAIError,
    PermissionDeniedError,
)

from agent_engine.adapters.common import (
    error_event,
    parse_tool_arguments,
    serialize_tool_arguments,
)
from agent_engine.domains.execution import (
    ConversationTurn,
    ProviderReply,
    ToolCallRequest,
    TurnRole,
    UsageInfo,
)
from agent_engine.domains.tools import ToolDescriptor
from agent_engine.exceptions import ProviderError, ProviderUnavailable
from agent_engine.interfaces.providers.llm import LLMProvider

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "gpt-3.5-turbo"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TIMEOUT = 60.0

OPENAI_MODELS = [
    "gpt-4o",
    "gpt-4o-mini",
    "gpt-4-turbo",
    "gpt-4",
    "gpt-3.5-turbo",
]


class OpenAIAdapter(LLMProvider):
    """OpenAI implementation of LLMProvider using chat completions."""

    provider_name = "openai"
    display_name = "OpenAI"
    models = OPENAI_MODELS

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        logfire_api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        if not api_key:
            raise ProviderUnavailable(f"{self.display_name} API key is not configured")

        self.api_key = api_key
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            default_headers=default_headers,
        )
        self.text_model = model or DEFAULT_CHAT_MODEL

        self.logfire = False
        if logfire_api_key:
            try:
                logfire.configure(token=logfire_api_key)
                self.logfire = True
                logfire.instrument_openai(self.client)
                logger.info(
                    "Logfire configured and OpenAI client instrumented successfully."
                )
            except Exception as e:
                logger.error(f"Failed to configure Logfire: {e}")
                self.logfire = False

    @property
    def name(self) -> str:
        return self.provider_name

    def list_models(self) -> List[str]:
        return list(self.models)

    def _build_messages(
        self, system_prompt: str, turns: Sequence[ConversationTurn]
    ) -> List[Dict[str, Any]]:
        """Translate the transcript to chat completion messages."""
        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        for turn in turns:
            if turn.role == TurnRole.USER:
                messages.append({"role": "user", "content": turn.content})
            elif turn.role == TurnRole.ASSISTANT:
                message: Dict[str, Any] = {
                    "role": "assistant",
                    "content": turn.content or None,
                }
                if turn.tool_calls:
                    message["tool_calls"] = [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": serialize_tool_arguments(tc.arguments),
                            },
                        }
                        for tc in turn.tool_calls
                    ]
                messages.append(message)
            elif turn.role == TurnRole.TOOL:
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": turn.tool_call_id or "",
                        "content": turn.content,
                    }
                )
        return messages

    def _build_request(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        model: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
        tools: Optional[List[ToolDescriptor]],
    ) -> Dict[str, Any]:
        request_params: Dict[str, Any] = {
            "model": model or self.text_model,
            "messages": self._build_messages(system_prompt, turns),
            "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
        }
        if tools:
            request_params["tools"] = [tool.to_function_schema() for tool in tools]
        return request_params

    def _map_error(self, error: Exception) -> Exception:
        if isinstance(
            error, (AuthenticationError, PermissionDeniedError, APIConnectionError)
        ):
            return ProviderUnavailable(f"{self.display_name} unavailable: {error}", error)
        return ProviderError(f"{self.display_name} API error: {error}", error)

    async def complete(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> ProviderReply:
        """Send a non-streaming chat completion request."""
        request_params = self._build_request(
            system_prompt, turns, model, temperature, max_tokens, tools
        )

        if self.logfire:
            logfire.instrument_openai(self.client)

        try:
            response = await self.client.chat.completions.create(**request_params)
        except OpenAIError as e:
            logger.error(f"{self.display_name} API error during completion: {e}")
            raise self._map_error(e) from e

        if not getattr(response, "choices", None):
            raise ProviderError(f"{self.display_name} returned no choices")

        choice = response.choices[0]
        message = choice.message
        tool_calls = [
            ToolCallRequest(
                id=tc.id or f"call_{index}",
                name=tc.function.name,
                arguments=parse_tool_arguments(tc.function.arguments),
            )
            for index, tc in enumerate(message.tool_calls or [])
        ]

        usage = None
        if getattr(response, "usage", None) is not None:
            usage = UsageInfo(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
            )

        return ProviderReply(
            turn=ConversationTurn.assistant(message.content or "", tool_calls),
            usage=usage,
            model=getattr(response, "model", None),
            finish_reason=choice.finish_reason,
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
        """Stream a chat completion as normalized events."""
        request_params = self._build_request(
            system_prompt, turns, model, temperature, max_tokens, tools
        )
        request_params["stream"] = True
        request_params["stream_options"] = {"include_usage": True}

        if self.logfire:
            logfire.instrument_openai(self.client)

        finish_reason = None
        try:
            stream = await self.client.chat.completions.create(**request_params)
            async for chunk in stream:
                usage = getattr(chunk, "usage", None)
                if usage is not None:
                    yield {
                        "type": "usage",
                        "prompt_tokens": usage.prompt_tokens or 0,
                        "completion_tokens": usage.completion_tokens or 0,
                        "total_tokens": usage.total_tokens or 0,
                    }
                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta = choice.delta
                if delta is not None and delta.content:
                    yield {"type": "content", "delta": delta.content}

                for tc in (delta.tool_calls if delta is not None else None) or []:
                    function = tc.function
                    yield {
                        "type": "tool_call_delta",
                        "id": tc.id,
                        "index": tc.index if tc.index is not None else 0,
                        "name": function.name if function else None,
                        "arguments_delta": (function.arguments or "") if function else "",
                    }

                if choice.finish_reason:
                    finish_reason = choice.finish_reason

            yield {"type": "message_end", "finish_reason": finish_reason or "stop"}
        except OpenAIError as e:
            logger.error(f"{self.display_name} API error during streaming: {e}")
            yield error_event(self._map_error(e))
        except Exception as e:
            logger.exception(f"Error in complete_stream: {e}")
            yield error_event(ProviderError(str(e), e))


OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

OPENROUTER_MODELS = [
    "openai/gpt-4o",
    "openai/gpt-4o-mini",
    "openai/gpt-4-turbo",
    "openai/gpt-3.5-turbo",
    "anthropic/claude-3.5-sonnet",
    "anthropic/claude-3.5-haiku",
    "anthropic/claude-3-opus",
    "google/gemini-pro-1.5",
]


class OpenRouterAdapter(OpenAIAdapter):
    """OpenRouter implementation of LLMProvider (OpenAI-compatible API)."""

    provider_name = "openrouter"
    display_name = "OpenRouter"
    models = OPENROUTER_MODELS

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        logfire_api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        app_url: Optional[str] = None,
        app_title: Optional[str] = None,
    ):
        headers = {}
        if app_url:
            headers["HTTP-Referer"] = app_url
        if app_title:
            headers["X-Title"] = app_title

        super().__init__(
            api_key=api_key,
            model=model or "openai/gpt-3.5-turbo",
            base_url=base_url or OPENROUTER_BASE_URL,
            logfire_api_key=logfire_api_key,
            timeout=timeout,
            default_headers=headers or None,
        )
