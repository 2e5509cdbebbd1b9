"""
Provider registry.

Maps provider selectors ("openai", "anthropic", ...) to factories and
constructs each provider lazily on first use.
"""
import logging
from typing import Callable, Dict, List

from agent_engine.exceptions import AgentEngineError, ProviderUnavailable
from agent_engine.interfaces.providers.llm import LLMProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[], LLMProvider]


class ProviderRegistry:
    """Registry of LLM providers keyed by name."""

    def __init__(self):
        self._factories: Dict[str, ProviderFactory] = {}
        self._instances: Dict[str, LLMProvider] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        """Register a factory; a later registration replaces the earlier one."""
        if name in self._factories:
            logger.info(f"Replacing provider factory '{name}'")
        self._factories = {**self._factories, name: factory}
        self._instances.pop(name, None)

    def register_instance(self, provider: LLMProvider) -> None:
        """Register an already constructed provider under its own name."""
        self._factories = {**self._factories, provider.name: lambda: provider}
        self._instances[provider.name] = provider

    def names(self) -> List[str]:
        return list(self._factories.keys())

    def has(self, name: str) -> bool:
        return name in self._factories

    def get(self, name: str) -> LLMProvider:
        """Return the provider, constructing it on first use.

        Raises:
            ProviderUnavailable: Unknown name, or the provider cannot be built
                (typically a missing API key)
        """
        provider = self._instances.get(name)
        if provider is not None:
            return provider

        factory = self._factories.get(name)
        if factory is None:
            raise ProviderUnavailable(f"Unknown provider: {name}")

        try:
            provider = factory()
        except ProviderUnavailable:
            raise
        except AgentEngineError as e:
            raise ProviderUnavailable(f"Provider '{name}' unavailable: {e}", e) from e
        except Exception as e:
            logger.error(f"Failed to construct provider '{name}': {e}")
            raise ProviderUnavailable(f"Provider '{name}' unavailable: {e}", e) from e

        self._instances[name] = provider
        logger.info(f"Provider '{name}' initialized")
        return provider

    def list_models(self) -> Dict[str, List[str]]:
        """Models per constructible provider; unavailable providers are skipped."""
        models: Dict[str, List[str]] = {}
        for name in self.names():
            try:
                models[name] = self.get(name).list_models()
            except ProviderUnavailable as e:
                logger.debug(f"Skipping models of '{name}': {e}")
        return models
