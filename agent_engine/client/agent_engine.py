"""
Simplified client interface for the Agent Engine.

This module provides a clean API for end users to define and run agents
without dealing with internal wiring.
"""

import json
import importlib.util
import logging
from typing import Any, Dict, List, Optional, Union

from agent_engine.domains.agent import AgentConfig, AgentSummary
from agent_engine.domains.execution import ExecutionRecord
from agent_engine.domains.mcp import ServerStatus
from agent_engine.domains.tools import ToolDescriptor
from agent_engine.factories.agent_factory import AgentEngineFactory
from agent_engine.interfaces.client.client import AgentEngine as AgentEngineInterface
from agent_engine.interfaces.plugins.plugins import Tool
from agent_engine.services.execution import ExecutionStream

logger = logging.getLogger(__name__)


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load a JSON config, or a Python file defining ``config``."""
    with open(config_path, "r") as f:
        if config_path.endswith(".json"):
            return json.load(f)

    spec = importlib.util.spec_from_file_location("config", config_path)
    config_module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(config_module)
    return config_module.config


class AgentEngine(AgentEngineInterface):
    """Simplified client interface for the agent system.

    Usage:
        async with AgentEngine(config=config) as engine:
            agent_id = await engine.create_agent({"provider": "openai", "model": "gpt-4o"})
            record = await engine.run(agent_id, "What is 2+2?")
            print(record.response)
    """

    def __init__(self, config_path: str = None, config: Dict[str, Any] = None):
        """Initialize the agent system from config file or dictionary.

        Args:
            config_path: Path to configuration file (JSON or Python)
            config: Configuration dictionary
        """
        if config is None and not config_path:
            raise ValueError("Either config or config_path must be provided")

        if config_path:
            config = load_config_file(config_path)

        self.config = config
        self.directory = AgentEngineFactory.create_from_config(config)
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        await self.directory.initialize()
        created = await self.directory.load_agents(self.config.get("agents", []))
        logger.info(f"Agent engine started with {len(created)} configured agents")

    async def shutdown(self) -> None:
        if not self._started:
            return
        self._started = False
        await self.directory.shutdown()

    async def __aenter__(self) -> "AgentEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    async def create_agent(self, config: Union[AgentConfig, Dict[str, Any]]) -> str:
        return await self.directory.create_agent(config)

    def get_agent(self, agent_id: str) -> Optional[AgentConfig]:
        return self.directory.get_agent(agent_id)

    async def delete_agent(self, agent_id: str) -> bool:
        return await self.directory.delete_agent(agent_id)

    def list_agents(self) -> List[AgentSummary]:
        return self.directory.list_agents()

    async def run(self, agent_id: str, prompt: str) -> ExecutionRecord:
        """Run an agent against a prompt.

        Args:
            agent_id: Agent id
            prompt: User prompt

        Returns:
            The finished ExecutionRecord; call ``raise_for_status()`` to turn
            a failed run into an exception
        """
        return await self.directory.run(agent_id, prompt)

    async def run_stream(self, agent_id: str, prompt: str) -> ExecutionStream:
        return await self.directory.run_stream(agent_id, prompt)

    def register_tool(self, tool: Tool) -> bool:
        return self.directory.register_tool(tool)

    def list_tools(self) -> List[ToolDescriptor]:
        return self.directory.list_tools()

    def list_servers(self) -> List[ServerStatus]:
        gateway = self.directory.remote_gateway
        return gateway.list_servers() if gateway is not None else []

    def list_models(self) -> Dict[str, List[str]]:
        return self.directory.engine.provider_registry.list_models()

    async def get_execution(self, execution_id: str) -> Optional[ExecutionRecord]:
        store = self.directory.execution_store
        return await store.get_execution(execution_id) if store else None

    async def list_executions(
        self, agent_id: Optional[str] = None, limit: int = 0
    ) -> List[ExecutionRecord]:
        store = self.directory.execution_store
        return await store.list_executions(agent_id, limit) if store else []
