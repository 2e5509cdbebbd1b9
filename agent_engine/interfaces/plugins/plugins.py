"""
Ports for local tools and the plugins that contribute them.

A local tool runs in-process; the registry turns each one into a
``ToolDescriptor`` the execution engine can offer to a model.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from agent_engine.domains.tools import ToolDescriptor


class Tool(ABC):
    """A callable capability an agent may declare by name."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name the model calls the tool by."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @abstractmethod
    def configure(self, config: Dict[str, Any]) -> None:
        """Receive the registry configuration; raising rejects the tool."""
        pass

    @abstractmethod
    def get_schema(self) -> Dict[str, Any]:
        """JSON schema (type ``object``) of the call arguments."""
        pass

    @abstractmethod
    async def execute(self, **params) -> Any:
        """Run the tool; exceptions become error payloads for the model."""
        pass


class ToolRegistry(ABC):
    """Name-keyed store of local tools."""

    @abstractmethod
    def register_tool(self, tool: Tool) -> bool:
        """Configure and store a tool; False when configuration fails."""
        pass

    @abstractmethod
    def unregister_tool(self, tool_name: str) -> bool:
        pass

    @abstractmethod
    def get_tool(self, tool_name: str) -> Optional[Tool]:
        pass

    @abstractmethod
    def get_descriptor(self, tool_name: str) -> Optional[ToolDescriptor]:
        pass

    @abstractmethod
    def list_all_tools(self) -> List[str]:
        """Registered names in registration order."""
        pass

    @abstractmethod
    def list_descriptors(self) -> List[ToolDescriptor]:
        pass

    @abstractmethod
    def configure_all_tools(self, config: Dict[str, Any]) -> None:
        """Merge ``config`` and reconfigure every tool."""
        pass


class Plugin(ABC):
    """Installable bundle that registers one or more tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @abstractmethod
    def initialize(self, tool_registry: ToolRegistry) -> bool:
        """Register the plugin's tools with ``tool_registry``."""
        pass

    @abstractmethod
    def configure(self, config: Dict[str, Any]) -> None:
        pass


class PluginManager(ABC):
    """Loads plugins from entry points and keeps them configured."""

    @abstractmethod
    def register_plugin(self, plugin: Plugin) -> bool:
        pass

    @abstractmethod
    def load_plugins(self) -> List[str]:
        """Load plugins not loaded yet and return their entry point names."""
        pass

    @abstractmethod
    def get_plugin(self, name: str) -> Optional[Plugin]:
        pass

    @abstractmethod
    def list_plugins(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def configure(self, config: Dict[str, Any]) -> None:
        pass
