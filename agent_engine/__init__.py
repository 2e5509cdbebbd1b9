"""
Agent Engine - run language-model agents in a bounded tool-calling loop.

Agents bind a provider, a model, a system prompt and a tool set. Tools are
either local Python tools or tools exposed by remote MCP servers.
"""

# Client interface (main entry point)
from agent_engine.client.agent_engine import AgentEngine

# Factory for creating agent systems
from agent_engine.factories.agent_factory import AgentEngineFactory

# Domain models
from agent_engine.domains.agent import AgentConfig
from agent_engine.domains.execution import ExecutionRecord, ExecutionStatus

# Useful tools and utilities
from agent_engine.plugins.manager import PluginManager
from agent_engine.plugins.registry import ToolRegistry
from agent_engine.plugins.tools.auto_tool import AutoTool
from agent_engine.plugins.tools.function_tool import FunctionTool
from agent_engine.interfaces.plugins.plugins import Tool

# Package metadata
__all__ = [
    # Main client interfaces
    "AgentEngine",
    # Factories
    "AgentEngineFactory",
    # Domain
    "AgentConfig",
    "ExecutionRecord",
    "ExecutionStatus",
    # Tools
    "PluginManager",
    "ToolRegistry",
    "AutoTool",
    "FunctionTool",
    "Tool",
]
