"""
Base class for local tools.

Subclasses pass their name, description and JSON parameter schema to the
constructor and implement ``execute``. Settings arrive through
``configure``; a tool reads its own section with ``settings``.
"""
from typing import Any, Dict, Optional

from agent_engine.interfaces.plugins.plugins import Tool

EMPTY_SCHEMA = {"type": "object", "properties": {}}


class AutoTool(Tool):
    """Local tool that optionally registers itself on construction."""

    def __init__(
        self,
        name: str,
        description: str,
        registry=None,
        schema: Optional[Dict[str, Any]] = None,
    ):
        if schema is not None and schema.get("type", "object") != "object":
            raise ValueError(f"Parameter schema of tool '{name}' must be an object schema")
        self._name = name
        self._description = description
        self._schema = schema
        self._config: Dict[str, Any] = {}

        if registry is not None:
            registry.register_tool(self)

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def settings(self) -> Dict[str, Any]:
        """The configuration section keyed by this tool's name."""
        section = self._config.get(self._name)
        return section if isinstance(section, dict) else {}

    def configure(self, config: Dict[str, Any]) -> None:
        if config is None:
            raise TypeError("Config cannot be None")
        self._config = config

    def get_schema(self) -> Dict[str, Any]:
        return self._schema or dict(EMPTY_SCHEMA)

    async def execute(self, **params) -> Any:
        raise NotImplementedError(f"Tool '{self._name}' does not implement execute")
