"""
Repository for the remote tool server configuration.

The configuration is a JSON file with a ``servers`` map keyed by server
name and an optional ``global`` section. Entries are kept as written so
``${ENV}`` placeholders survive a save; placeholders are substituted when
entries are parsed.
"""
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from agent_engine.domains.mcp import (
    AuthConfig,
    ConfigStats,
    GatewaySettings,
    RemoteServerConfig,
    RemoteServersFile,
)

logger = logging.getLogger(__name__)

ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
SUBSTITUTED_AUTH_FIELDS = ("key", "token", "username", "password")


def substitute_env(value: str) -> str:
    """Replace ``${NAME}`` with the environment value. Unset names are kept."""

    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in os.environ:
            logger.warning(f"Environment variable {name} is not set")
            return match.group(0)
        return os.environ[name]

    return ENV_PATTERN.sub(replace, value)


class RemoteServerConfigRepository:
    """Loads, queries and saves remote tool server definitions."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._servers: Dict[str, RemoteServerConfig] = {}
        self._invalid: Dict[str, str] = {}
        self._settings = GatewaySettings()
        if config_path:
            self.reload()

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], config_path: Optional[str] = None
    ) -> "RemoteServerConfigRepository":
        """Build a repository from an in-memory configuration."""
        repository = cls()
        repository.config_path = config_path
        repository._load(data)
        return repository

    @staticmethod
    def create_example_config() -> RemoteServersFile:
        return RemoteServersFile(
            servers={
                "local-dev": RemoteServerConfig(
                    name="local-dev",
                    transport="sse",
                    endpoint="http://localhost:8080/sse",
                    auth=AuthConfig(type="api_key", key="dev-api-key"),
                    description="Local development MCP server",
                    tags=["development", "local"],
                ),
                "production": RemoteServerConfig(
                    name="production",
                    transport="sse",
                    endpoint="https://api.example.com/mcp",
                    auth=AuthConfig(type="bearer", token="${PROD_BEARER_TOKEN}"),
                    enabled=False,
                    description="Production MCP server",
                    tags=["production", "remote"],
                ),
                "tools": RemoteServerConfig(
                    name="tools",
                    transport="stdio",
                    endpoint="python -m mcp_server_tools",
                    auth=AuthConfig(type="none"),
                    description="Local tools MCP server",
                    tags=["tools", "local"],
                ),
            }
        )

    @property
    def settings(self) -> GatewaySettings:
        return self._settings

    def reload(self) -> None:
        """Re-read the configuration file.

        A missing file yields an empty configuration; a malformed file is
        logged and treated as having no servers.
        """
        if not self.config_path:
            return

        path = Path(self.config_path)
        logger.debug(f"Loading remote server config from: {path}")
        if not path.exists():
            logger.warning(f"Remote server config file '{path}' not found, using empty config")
            self._load({})
            return

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read remote server config '{path}': {e}")
            self._load({})
            return

        if not isinstance(data, dict):
            logger.error(f"Remote server config '{path}' must be a JSON object")
            data = {}
        self._load(data)
        logger.info(f"Loaded remote server config with {len(self._entries)} servers")

    def _load(self, data: Dict[str, Any]) -> None:
        settings = GatewaySettings()
        global_section = data.get("global")
        if global_section:
            try:
                settings = GatewaySettings.model_validate(global_section)
            except ValidationError as e:
                logger.error(f"Invalid global remote server settings, using defaults: {e}")

        entries: Dict[str, Dict[str, Any]] = {}
        servers = data.get("servers") or {}
        if not isinstance(servers, dict):
            logger.error("'servers' must be a map of server name to definition")
            servers = {}
        for name, entry in servers.items():
            entries[name] = dict(entry) if isinstance(entry, dict) else {"invalid": entry}

        self._settings = settings
        self._entries = entries
        self._parse_entries()

    def _parse_entries(self) -> None:
        servers: Dict[str, RemoteServerConfig] = {}
        invalid: Dict[str, str] = {}
        for name, entry in self._entries.items():
            try:
                servers[name] = self._parse_entry(name, entry)
            except (ValidationError, ValueError, TypeError) as e:
                logger.warning(f"Invalid remote server '{name}': {e}")
                invalid[name] = str(e)
        self._servers = servers
        self._invalid = invalid

    @staticmethod
    def _parse_entry(name: str, entry: Dict[str, Any]) -> RemoteServerConfig:
        data = {"name": name, **entry}
        if isinstance(data.get("endpoint"), str):
            data["endpoint"] = substitute_env(data["endpoint"])
        auth = data.get("auth")
        if isinstance(auth, dict):
            auth = dict(auth)
            for field in SUBSTITUTED_AUTH_FIELDS:
                if isinstance(auth.get(field), str):
                    auth[field] = substitute_env(auth[field])
            data["auth"] = auth
        return RemoteServerConfig.model_validate(data)

    def get_all_servers(self) -> List[RemoteServerConfig]:
        """Every valid server, in configuration order."""
        return list(self._servers.values())

    def get_enabled_servers(self) -> List[RemoteServerConfig]:
        return [server for server in self._servers.values() if server.enabled]

    def get_servers_by_tag(self, tag: str) -> List[RemoteServerConfig]:
        return [
            server
            for server in self._servers.values()
            if server.enabled and tag in server.tags
        ]

    def get_server_by_name(self, name: str) -> Optional[RemoteServerConfig]:
        """Return an enabled server by name."""
        server = self._servers.get(name)
        if server is None or not server.enabled:
            return None
        return server

    def get_all_tags(self) -> List[str]:
        return sorted({tag for server in self._servers.values() for tag in server.tags})

    def invalid_servers(self) -> Dict[str, str]:
        """Entries that failed validation, with the reason."""
        return dict(self._invalid)

    def add_server(self, server: RemoteServerConfig) -> None:
        """Add or replace a server definition."""
        entry = server.model_dump(mode="json", exclude_none=True)
        entry.pop("name", None)
        entries = dict(self._entries)
        entries[server.name] = entry
        self._entries = entries
        self._parse_entries()

    def remove_server(self, name: str) -> bool:
        if name not in self._entries:
            return False
        entries = dict(self._entries)
        del entries[name]
        self._entries = entries
        self._parse_entries()
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "servers": {name: dict(entry) for name, entry in self._entries.items()},
            "global": self._settings.model_dump(mode="json"),
        }

    def save(self, path: Optional[str] = None) -> str:
        """Write the configuration as written (placeholders intact)."""
        target = path or self.config_path
        if not target:
            raise ValueError("No path to save the remote server config to")
        Path(target).write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        logger.info(f"Remote server config saved to: {target}")
        return target

    def get_stats(self) -> ConfigStats:
        servers_by_transport: Dict[str, int] = {}
        for server in self._servers.values():
            key = server.transport.value
            servers_by_transport[key] = servers_by_transport.get(key, 0) + 1

        enabled = len(self.get_enabled_servers())
        return ConfigStats(
            total_servers=len(self._entries),
            enabled_servers=enabled,
            disabled_servers=len(self._servers) - enabled,
            invalid_servers=len(self._invalid),
            servers_by_transport=servers_by_transport,
        )
