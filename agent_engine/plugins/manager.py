"""
Plugin manager for the Agent Engine.

Installed distributions contribute local tools through the
``agent_engine.plugins`` entry point group. An entry point may name a
``Plugin`` (a class or factory) that registers tools itself, or a ``Tool``
class that is registered directly.
"""

import importlib.metadata
import logging
from typing import Any, Dict, List, Optional

from agent_engine.interfaces.plugins.plugins import Plugin, Tool
from agent_engine.interfaces.plugins.plugins import (
    PluginManager as PluginManagerInterface,
)
from agent_engine.plugins.registry import ToolRegistry

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "agent_engine.plugins"


class PluginManager(PluginManagerInterface):
    """Discovers plugins and tracks the tools each one contributed."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        tool_registry: Optional[ToolRegistry] = None,
    ):
        self.config = config or {}
        self.tool_registry = tool_registry or ToolRegistry()
        self._plugins: Dict[str, Plugin] = {}
        self._contributed: Dict[str, List[str]] = {}
        self._seen_entry_points = set()
        self.failed: Dict[str, str] = {}

    @property
    def allowed_entry_points(self) -> Optional[List[str]]:
        """Entry point names enabled by ``tools.plugins``; None allows all."""
        return (self.config.get("tools") or {}).get("plugins")

    def register_plugin(self, plugin: Plugin) -> bool:
        """Initialize and configure a plugin.

        Tools the plugin registered are removed again when either step
        fails, so a broken plugin leaves the registry as it found it.
        """
        before = set(self.tool_registry.list_all_tools())
        try:
            plugin.initialize(self.tool_registry)
            plugin.configure(self.config)
        except Exception as e:
            logger.error(f"Error registering plugin {plugin.name}: {e}")
            for name in set(self.tool_registry.list_all_tools()) - before:
                self.tool_registry.unregister_tool(name)
            self.failed[plugin.name] = str(e)
            return False

        added = [n for n in self.tool_registry.list_all_tools() if n not in before]
        self._plugins = {**self._plugins, plugin.name: plugin}
        self._contributed[plugin.name] = added
        logger.info(f"Registered plugin {plugin.name} with tools: {added}")
        return True

    def _register_entry_point(self, name: str, target: Any) -> bool:
        if isinstance(target, type) and issubclass(target, Tool):
            tool = target()
            if not self.tool_registry.register_tool(tool):
                self.failed[name] = f"tool {tool.name} could not be registered"
                return False
            self._contributed[name] = [tool.name]
            return True

        plugin = target() if callable(target) else target
        if not isinstance(plugin, Plugin):
            raise TypeError(f"expected a Plugin or Tool, got {type(plugin).__name__}")
        return self.register_plugin(plugin)

    def load_plugins(self) -> List[str]:
        """Load every entry point of the plugin group not loaded before.

        Returns:
            Names of the entry points that loaded
        """
        allowed = self.allowed_entry_points
        loaded = []

        for entry_point in importlib.metadata.entry_points(group=ENTRY_POINT_GROUP):
            if allowed is not None and entry_point.name not in allowed:
                logger.debug(f"Plugin {entry_point.name} not enabled, skipping")
                continue

            key = f"{entry_point.name}:{entry_point.value}"
            if key in self._seen_entry_points:
                continue
            self._seen_entry_points.add(key)

            try:
                if self._register_entry_point(entry_point.name, entry_point.load()):
                    loaded.append(entry_point.name)
            except Exception as e:
                logger.error(f"Error loading plugin {entry_point.name}: {e}")
                self.failed[entry_point.name] = str(e)

        return loaded

    def get_plugin(self, name: str) -> Optional[Plugin]:
        return self._plugins.get(name)

    def list_plugins(self) -> List[Dict[str, Any]]:
        """Registered plugins with their description and contributed tools."""
        return [
            {
                "name": plugin.name,
                "description": plugin.description,
                "tools": list(self._contributed.get(plugin.name, [])),
            }
            for plugin in self._plugins.values()
        ]

    def configure(self, config: Dict[str, Any]) -> None:
        """Merge ``config`` and push it to every tool and plugin."""
        self.config.update(config)
        self.tool_registry.configure_all_tools(config)
        for name, plugin in self._plugins.items():
            try:
                plugin.configure(self.config)
            except Exception as e:
                logger.error(f"Error configuring plugin {name}: {e}")
