"""
Agent directory service.

Stores named agents, validates them against the registered providers, and
runs them through the execution engine.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from agent_engine.domains.agent import Agent, AgentConfig, AgentSummary
from agent_engine.domains.execution import ExecutionRecord
from agent_engine.domains.tools import ToolDescriptor
from agent_engine.exceptions import AgentNotFound, InvalidConfig
from agent_engine.interfaces.plugins.plugins import Tool
from agent_engine.interfaces.repositories.execution import ExecutionStore
from agent_engine.interfaces.services.agent_directory import (
    AgentDirectory as AgentDirectoryInterface,
)
from agent_engine.interfaces.services.remote_tools import RemoteToolGateway
from agent_engine.services.execution import EventSink, ExecutionEngine, ExecutionStream
from agent_engine.services.tool_resolver import ToolResolver

logger = logging.getLogger(__name__)


class AgentDirectory(AgentDirectoryInterface):
    """Owned store of agents plus the entry point for running them."""

    def __init__(
        self,
        engine: ExecutionEngine,
        execution_store: Optional[ExecutionStore] = None,
        remote_gateway: Optional[RemoteToolGateway] = None,
    ):
        self.engine = engine
        self.execution_store = execution_store
        self.remote_gateway = remote_gateway
        self._agents: Dict[str, AgentConfig] = {}
        self._lock = asyncio.Lock()

    @property
    def tool_resolver(self) -> ToolResolver:
        return self.engine.tool_resolver

    async def initialize(self) -> None:
        """Connect remote tool servers."""
        if self.remote_gateway is not None:
            await self.remote_gateway.initialize()

    async def shutdown(self) -> None:
        if self.remote_gateway is not None:
            await self.remote_gateway.shutdown()

    def _validate(self, config: Union[AgentConfig, Dict[str, Any]]) -> AgentConfig:
        if isinstance(config, AgentConfig):
            # Revalidate: model_copy(update=...) bypasses field validators
            data = config.model_dump()
        else:
            data = dict(config)
        try:
            agent_config = AgentConfig.model_validate(data)
        except ValidationError as e:
            raise InvalidConfig(f"Invalid agent configuration: {e}", e) from e

        providers = self.engine.provider_registry
        if not providers.has(agent_config.provider):
            raise InvalidConfig(
                f"Unknown provider '{agent_config.provider}'. "
                f"Known providers: {', '.join(providers.names()) or 'none'}"
            )
        return agent_config

    async def create_agent(self, config: Union[AgentConfig, Dict[str, Any]]) -> str:
        """Validate and store an agent.

        Raises:
            InvalidConfig: The configuration is invalid, names an unknown
                provider, or reuses an existing id
        """
        agent_config = self._validate(config)
        async with self._lock:
            if agent_config.id in self._agents:
                raise InvalidConfig(f"Agent already exists: {agent_config.id}")
            self._agents = {**self._agents, agent_config.id: agent_config}

        logger.info(f"Created agent {agent_config.id} ({agent_config.name})")
        return agent_config.id

    def get_agent(self, agent_id: str) -> Optional[AgentConfig]:
        return self._agents.get(agent_id)

    async def delete_agent(self, agent_id: str) -> bool:
        async with self._lock:
            if agent_id not in self._agents:
                return False
            self._agents = {k: v for k, v in self._agents.items() if k != agent_id}
        logger.info(f"Deleted agent {agent_id}")
        return True

    def list_agents(self) -> List[AgentSummary]:
        configs = sorted(self._agents.values(), key=lambda c: c.created_at)
        return [AgentSummary.from_config(config) for config in configs]

    async def load_agents(self, configs: Iterable[Union[AgentConfig, Dict[str, Any]]]) -> List[str]:
        """Create agents at startup; invalid entries are logged and skipped."""
        created = []
        for config in configs:
            try:
                created.append(await self.create_agent(config))
            except InvalidConfig as e:
                logger.error(f"Skipping agent configuration: {e}")
        return created

    def register_tool(self, tool: Tool) -> bool:
        return self.tool_resolver.tool_registry.register_tool(tool)

    def list_tools(self) -> List[ToolDescriptor]:
        return self.tool_resolver.list_tools()

    async def _touch(self, agent_id: str) -> Agent:
        async with self._lock:
            config = self._agents.get(agent_id)
            if config is None:
                raise AgentNotFound(agent_id)
            agent = Agent(config).touch()
            self._agents = {**self._agents, agent_id: agent.config}
        return agent

    async def _execute(
        self, agent: Agent, prompt: str, emit: Optional[EventSink] = None
    ) -> ExecutionRecord:
        record = await self.engine.execute(agent, prompt, emit=emit)
        if self.execution_store is not None:
            try:
                await self.execution_store.save_execution(record)
            except Exception as e:
                logger.error(f"Failed to store execution {record.execution_id}: {e}")
        return record

    async def run(self, agent_id: str, prompt: str) -> ExecutionRecord:
        """Run an agent and return its execution record.

        Raises:
            AgentNotFound: No agent has this id
            ToolNotFound: A declared tool resolves nowhere
            ServerUnavailable: A declared remote tool's server is not connected
        """
        agent = await self._touch(agent_id)
        return await self._execute(agent, prompt)

    async def run_stream(self, agent_id: str, prompt: str) -> ExecutionStream:
        """Start a run and stream its lifecycle events.

        Raises:
            AgentNotFound: No agent has this id
        """
        agent = await self._touch(agent_id)
        return ExecutionStream(lambda emit: self._execute(agent, prompt, emit))
