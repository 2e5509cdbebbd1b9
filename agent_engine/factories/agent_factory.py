"""
Factory for creating and wiring components of the Agent Engine.

This module handles the creation and dependency injection for the
providers, tool registry, remote tool gateway, execution engine and
agent directory.
"""

import logging
import os
from typing import Any, Callable, Dict, Optional

# Service imports
from agent_engine.services.agent_directory import AgentDirectory
from agent_engine.services.execution import ExecutionEngine
from agent_engine.services.providers import ProviderRegistry
from agent_engine.services.remote_tools import RemoteToolGateway
from agent_engine.services.tool_resolver import ToolResolver

# Repository imports
from agent_engine.repositories.execution import InMemoryExecutionStore
from agent_engine.repositories.remote_servers import RemoteServerConfigRepository

# Adapter imports
from agent_engine.adapters.anthropic_adapter import AnthropicAdapter
from agent_engine.adapters.gemini_adapter import GeminiAdapter
from agent_engine.adapters.openai_adapter import OpenAIAdapter, OpenRouterAdapter

# Plugin imports
from agent_engine.interfaces.providers.llm import LLMProvider
from agent_engine.plugins.manager import PluginManager
from agent_engine.plugins.registry import ToolRegistry
from agent_engine.plugins.tools import BUILTIN_TOOLS

logger = logging.getLogger(__name__)

API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}
MCP_CONFIG_ENV = "MCP_CONFIG_PATH"
OPENAI_BASE_URL_ENV = "OPENAI_API_BASE_URL"


class AgentEngineFactory:
    """Factory for creating and wiring components of the Agent Engine."""

    @staticmethod
    def _provider_settings(config: Dict[str, Any], name: str) -> Dict[str, Any]:
        section = config.get(name) or {}
        return {
            "api_key": section.get("api_key") or os.getenv(API_KEY_ENV[name]),
            "model": section.get("model"),
            "base_url": section.get("base_url"),
        }

    @staticmethod
    def create_provider_registry(config: Dict[str, Any]) -> ProviderRegistry:
        """Register a lazy factory for every supported provider."""
        logfire_api_key = (config.get("logfire") or {}).get("api_key")
        if "logfire" in config and not logfire_api_key:
            raise ValueError("Pydantic Logfire API key is required.")

        def openai_factory() -> LLMProvider:
            settings = AgentEngineFactory._provider_settings(config, "openai")
            return OpenAIAdapter(
                api_key=settings["api_key"],
                model=settings["model"],
                base_url=settings["base_url"] or os.getenv(OPENAI_BASE_URL_ENV),
                logfire_api_key=logfire_api_key,
            )

        def openrouter_factory() -> LLMProvider:
            settings = AgentEngineFactory._provider_settings(config, "openrouter")
            section = config.get("openrouter") or {}
            return OpenRouterAdapter(
                api_key=settings["api_key"],
                model=settings["model"],
                base_url=settings["base_url"],
                logfire_api_key=logfire_api_key,
                app_url=section.get("app_url"),
                app_title=section.get("app_title", "Agent Engine"),
            )

        def http_factory(name: str, adapter_cls) -> Callable[[], LLMProvider]:
            def factory() -> LLMProvider:
                settings = AgentEngineFactory._provider_settings(config, name)
                return adapter_cls(
                    api_key=settings["api_key"],
                    model=settings["model"],
                    base_url=settings["base_url"],
                )

            return factory

        registry = ProviderRegistry()
        registry.register("openai", openai_factory)
        registry.register("anthropic", http_factory("anthropic", AnthropicAdapter))
        registry.register("gemini", http_factory("gemini", GeminiAdapter))
        registry.register("openrouter", openrouter_factory)
        return registry

    @staticmethod
    def create_tool_registry(config: Dict[str, Any]) -> ToolRegistry:
        """Register the configured built-in tools and any installed plugins."""
        tool_registry = ToolRegistry(config=config)

        builtin = (config.get("tools") or {}).get("builtin")
        names = list(BUILTIN_TOOLS) if builtin is None else builtin
        for name in names:
            tool_cls = BUILTIN_TOOLS.get(name)
            if tool_cls is None:
                logger.warning(f"Unknown built-in tool '{name}', skipping")
                continue
            tool_registry.register_tool(tool_cls())

        plugin_manager = PluginManager(config=config, tool_registry=tool_registry)
        try:
            loaded_plugins = plugin_manager.load_plugins()
            logger.info(f"Loaded {len(loaded_plugins)} plugins")
        except Exception as e:
            logger.error(f"Error loading plugins: {e}")

        logger.debug(f"Local tools after initialization: {tool_registry.list_all_tools()}")
        return tool_registry

    @staticmethod
    def create_remote_gateway(config: Dict[str, Any]) -> Optional[RemoteToolGateway]:
        """Build the remote tool gateway when remote servers are configured."""
        mcp_config = config.get("mcp") or {}
        config_path = mcp_config.get("config_path") or os.getenv(MCP_CONFIG_ENV)

        if "servers" in mcp_config:
            repository = RemoteServerConfigRepository.from_dict(
                mcp_config, config_path=config_path
            )
        elif config_path:
            repository = RemoteServerConfigRepository(config_path)
        else:
            logger.info("No remote tool servers configured")
            return None

        return RemoteToolGateway(
            config_repository=repository,
            retry_delay=mcp_config.get("retry_delay", 1.0),
        )

    @staticmethod
    def create_from_config(config: Dict[str, Any]) -> AgentDirectory:
        """Create the agent system from configuration.

        Agents listed under ``agents`` are not created here; the caller
        loads them with ``AgentDirectory.load_agents`` once a loop runs.

        Args:
            config: Configuration dictionary

        Returns:
            Configured AgentDirectory instance
        """
        provider_registry = AgentEngineFactory.create_provider_registry(config)
        tool_registry = AgentEngineFactory.create_tool_registry(config)
        remote_gateway = AgentEngineFactory.create_remote_gateway(config)

        execution_config = config.get("execution") or {}
        engine = ExecutionEngine(
            provider_registry=provider_registry,
            tool_resolver=ToolResolver(tool_registry, remote_gateway),
            parallel_tool_calls=execution_config.get("parallel_tool_calls", True),
            use_streaming=execution_config.get("use_streaming", False),
        )

        return AgentDirectory(
            engine=engine,
            execution_store=InMemoryExecutionStore(),
            remote_gateway=remote_gateway,
        )
