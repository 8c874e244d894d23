"""YAML configuration loader.

Loads a single YAML file layered on top of the KANBAN_PM_* env vars.
When no YAML is provided, EngineConfig.from_env() applies unchanged.

Example YAML:
    engine:
      default_model: sonnet
      backend_url: http://localhost:45557
      announce_thinking: true
      oneshot_timeout_seconds: 120

    bridge:
      command: /opt/kanban/bin/mcp_task_server
      args: []

    agents:
      claude:
        command: /usr/local/bin/claude
      opencode:
        enabled: false
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from .config import EngineConfig, parse_flag
from .errors import UnknownAgentError
from .models import AgentKind

logger = logging.getLogger(__name__)


@dataclass
class AgentConfig:
    """Per-agent overrides."""
    command: str | None = None  # path or name of the CLI binary
    enabled: bool = True


@dataclass
class PmChatConfig:
    """Complete parsed YAML configuration."""
    engine: EngineConfig
    agents: dict[AgentKind, AgentConfig] = field(default_factory=dict)


_ENGINE_FIELDS = {f.name for f in fields(EngineConfig)}


def _apply_engine_overrides(engine: EngineConfig, raw: dict) -> None:
    for key, value in raw.items():
        if key not in _ENGINE_FIELDS:
            logger.warning("Unknown engine setting '%s', ignoring", key)
            continue
        if value is None:
            logger.warning("Engine setting '%s' is empty, keeping default", key)
            continue
        current = getattr(engine, key)
        if isinstance(current, bool):
            value = parse_flag(value)
        elif isinstance(current, float):
            value = float(value)
        elif isinstance(current, int):
            value = int(value)
        setattr(engine, key, value)


def _agent_enabled(value: object) -> bool:
    return True if value is None else parse_flag(value)


def load_yaml_config(
    path: str | Path,
    base: EngineConfig | None = None,
) -> PmChatConfig:
    """Load and parse a YAML config file.

    Engine settings are applied on top of *base* (env-derived config
    when omitted). Agent sections are keyed by short name or wire
    identifier; unknown agents are skipped with a warning.
    """
    path = Path(path)
    logger.info(
        "load_yaml_config: attempting to load config from %s (exists=%s)",
        path, path.exists()
    )
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(
            "load_yaml_config: config file not found at %s (absolute path: %s)",
            path, path.absolute()
        )
        raise
    except yaml.YAMLError as exc:
        logger.error(
            "load_yaml_config: YAML parse error in %s: %s",
            path, exc
        )
        raise

    top_sections = sorted(raw.keys())
    logger.info(
        "Parsed YAML config %s, sections: %s",
        path.name, ", ".join(top_sections) if top_sections else "(empty)",
    )

    engine = base if base is not None else EngineConfig.from_env()
    _apply_engine_overrides(engine, raw.get("engine") or {})

    bridge_raw = raw.get("bridge") or {}
    if bridge_raw.get("command"):
        engine.bridge_command = str(bridge_raw["command"])
        engine.bridge_args = [str(a) for a in bridge_raw.get("args") or []]

    agents: dict[AgentKind, AgentConfig] = {}
    for name, agent_raw in (raw.get("agents") or {}).items():
        try:
            kind = AgentKind.parse(name)
        except UnknownAgentError as exc:
            logger.warning("Skipping agent section '%s': %s", name, exc)
            continue
        agent_raw = agent_raw or {}
        agents[kind] = AgentConfig(
            command=agent_raw.get("command"),
            enabled=_agent_enabled(agent_raw.get("enabled")),
        )

    return PmChatConfig(engine=engine, agents=agents)
