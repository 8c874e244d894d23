"""Ephemeral MCP configuration files.

Each session gets one JSON file that tells the agent CLI how to start
the task tool bridge. The file is written before the process is
spawned and removed once the process has exited, on every path.

Payload shapes by dialect:
    mcpServers   {"mcpServers": {"kanban_pm": {...}}}            Claude, Gemini
    mcp_servers  {"mcp_servers": {"kanban_pm": {...}}}           Codex
    mcp          {"mcp": {"kanban_pm": {...}}, "$schema": "..."}  OpenCode
"""
from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from kanban_pm.shared.services.durable_write import (
    atomic_write_text,
    remove_file,
    safe_file_stem,
)

from .config import EngineConfig
from .errors import ConfigWriteFailed
from .models import AgentDescriptor, ConfigDialect, EphemeralConfig

logger = logging.getLogger(__name__)

BRIDGE_SERVER_NAME = "kanban_pm"
BRIDGE_BACKEND_ENV = "KANBAN_BACKEND_URL"
BRIDGE_MODULE = "kanban_pm.engine.mcp_server.task_bridge"
OPENCODE_SCHEMA_URL = "https://opencode.ai/config.json"
CONFIG_FILE_PREFIX = "kanban-pm-mcp-"


@dataclass(frozen=True)
class BridgeCommand:
    """How the agent starts the task tool bridge (an MCP stdio server)."""
    command: str
    args: list[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: EngineConfig) -> BridgeCommand:
        if config.bridge_command:
            return cls(config.bridge_command, list(config.bridge_args))
        return cls(sys.executable, ["-m", BRIDGE_MODULE])


class ConfigProvisioner:
    """Builds, writes and removes per-session MCP config files."""

    def __init__(
        self,
        config_dir: str | Path,
        backend_url: str,
        bridge: BridgeCommand,
    ) -> None:
        self._dir = Path(config_dir)
        self._backend_url = backend_url
        self._bridge = bridge

    @classmethod
    def from_config(cls, config: EngineConfig) -> ConfigProvisioner:
        return cls(
            config.config_dir,
            config.backend_url,
            BridgeCommand.from_config(config),
        )

    def path_for(self, session_id: str) -> Path:
        # Always a direct child of the config dir.
        return self._dir / f"{CONFIG_FILE_PREFIX}{safe_file_stem(session_id)}.json"

    def build(
        self, descriptor: AgentDescriptor, bridge: BridgeCommand | None = None,
    ) -> dict[str, Any]:
        """Return the config payload in the agent's dialect.

        ``bridge`` overrides the task bridge launch target for this payload.
        """
        bridge = bridge or self._bridge
        entry = {
            "command": bridge.command,
            "args": list(bridge.args),
            "env": {BRIDGE_BACKEND_ENV: self._backend_url},
        }
        dialect = descriptor.config_dialect
        payload: dict[str, Any] = {dialect.value: {BRIDGE_SERVER_NAME: entry}}
        if dialect is ConfigDialect.MCP:
            payload["$schema"] = OPENCODE_SCHEMA_URL
        return payload

    def write(self, session_id: str, payload: dict[str, Any]) -> EphemeralConfig:
        """Write *payload* as pretty-printed JSON. Raises ConfigWriteFailed."""
        path = self.path_for(session_id)
        try:
            atomic_write_text(path, json.dumps(payload, indent=2))
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Failed to write MCP config %s: %s", path, exc)
            raise ConfigWriteFailed(str(path), str(exc)) from exc
        logger.info(
            "Created MCP config at %s with backend URL %s",
            path, self._backend_url,
        )
        return EphemeralConfig(session_id=session_id, path=str(path), payload=payload)

    def provision(
        self, session_id: str, descriptor: AgentDescriptor,
    ) -> EphemeralConfig:
        return self.write(session_id, self.build(descriptor))

    def remove(self, path: str | Path) -> None:
        """Delete the config file. Never raises."""
        try:
            if remove_file(Path(path)):
                logger.debug("Removed MCP config %s", path)
        except OSError as exc:
            logger.warning("Failed to remove MCP config %s: %s", path, exc)
