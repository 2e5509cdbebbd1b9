from abc import ABC, abstractmethod
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence

from agent_engine.domains.execution import ConversationTurn, ProviderReply
from agent_engine.domains.tools import ToolDescriptor


class LLMProvider(ABC):
    """Interface for language model providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider selector used by agent configurations."""
        pass

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> ProviderReply:
        """Return the assistant's next turn.

        Raises:
            ProviderUnavailable: The service cannot be reached or authenticated
            ProviderError: The call reached the service and failed
        """
        pass

    @abstractmethod
    async def complete_stream(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """Stream response deltas and tool call deltas.

        Yields normalized events:
        - {"type": "content", "delta": str}
        - {"type": "tool_call_delta", "id": Optional[str], "index": int, "name": Optional[str], "arguments_delta": str}
        - {"type": "usage", "prompt_tokens": int, "completion_tokens": int, "total_tokens": int}
        - {"type": "message_end", "finish_reason": str}
        - {"type": "error", "error": str, "kind": str}

        The sequence ends after "message_end" or "error".
        """
        pass

    @abstractmethod
    def list_models(self) -> List[str]:
        """List the models this provider offers."""
        pass
