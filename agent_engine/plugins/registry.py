"""
Tool registry for the Agent Engine.

This module implements the concrete ToolRegistry that holds the locally
implemented tools agents may call.
"""

import logging
from typing import Dict, List, Any, Optional

from agent_engine.domains.tools import ToolDescriptor, ToolTarget
from agent_engine.interfaces.plugins.plugins import (
    ToolRegistry as ToolRegistryInterface,
)
from agent_engine.interfaces.plugins.plugins import Tool

logger = logging.getLogger(__name__)


class ToolRegistry(ToolRegistryInterface):
    """Instance-based registry of local tools.

    A later registration under an existing name replaces the earlier one.
    """

    def __init__(self, config: Dict[str, Any] = None):
        """Initialize an empty tool registry."""
        self._tools: Dict[str, Tool] = {}
        self._descriptors: Dict[str, ToolDescriptor] = {}
        self._config = config or {}

    def register_tool(self, tool: Tool) -> bool:
        """Register a tool with this registry."""
        try:
            tool.configure(self._config)
            descriptor = ToolDescriptor(
                name=tool.name,
                description=tool.description,
                parameters=tool.get_schema() or {"type": "object", "properties": {}},
                target=ToolTarget.local(f"{type(tool).__module__}.{type(tool).__qualname__}"),
            )
        except Exception as e:
            logger.error(f"Error registering tool: {str(e)}")
            return False

        if tool.name in self._tools:
            logger.info(f"Replacing previously registered tool: {tool.name}")

        # Copy-on-write so readers iterating a snapshot never see a partial update
        tools = dict(self._tools)
        descriptors = dict(self._descriptors)
        tools[tool.name] = tool
        descriptors[tool.name] = descriptor
        self._tools, self._descriptors = tools, descriptors

        logger.info(f"Successfully registered and configured tool: {tool.name}")
        return True

    def unregister_tool(self, tool_name: str) -> bool:
        """Remove a tool from the registry."""
        if tool_name not in self._tools:
            return False
        tools = {k: v for k, v in self._tools.items() if k != tool_name}
        descriptors = {k: v for k, v in self._descriptors.items() if k != tool_name}
        self._tools, self._descriptors = tools, descriptors
        logger.info(f"Unregistered tool: {tool_name}")
        return True

    def get_tool(self, tool_name: str) -> Optional[Tool]:
        """Get a tool by name."""
        return self._tools.get(tool_name)

    def get_descriptor(self, tool_name: str) -> Optional[ToolDescriptor]:
        """Get the descriptor of a tool by name."""
        return self._descriptors.get(tool_name)

    def list_all_tools(self) -> List[str]:
        """List all registered tools."""
        return list(self._tools.keys())

    def list_descriptors(self) -> List[ToolDescriptor]:
        return list(self._descriptors.values())

    def configure_all_tools(self, config: Dict[str, Any]) -> None:
        """Merge ``config`` into the registry settings and reconfigure every tool.

        A tool that rejects the new settings stays registered with its
        previous configuration.
        """
        self._config.update(config)
        failed = []
        for name, tool in self._tools.items():
            try:
                tool.configure(self._config)
            except Exception as e:
                logger.error(f"Error configuring tool {name}: {e}")
                failed.append(name)

        if failed:
            logger.warning(f"{len(failed)} tools kept their previous configuration: {failed}")
