"""EngineConfig env loading, YAML overrides and registry construction."""
from __future__ import annotations

import os
from unittest.mock import patch

import pytest
import yaml

from kanban_pm.engine.agents import build_agent_registry
from kanban_pm.engine.config import EngineConfig
from kanban_pm.engine.models import AgentKind
from kanban_pm.engine.yaml_config import load_yaml_config


class _FakeResolver:
    def __init__(self, paths: dict[str, str]) -> None:
        self._paths = paths

    async def resolve(self, name: str) -> str | None:
        return self._paths.get(name)


def _clean_env() -> dict[str, str]:
    return {
        k: v for k, v in os.environ.items()
        if not k.startswith("KANBAN_PM_") and k != "BACKEND_PORT"
    }


def test_defaults_from_empty_env():
    with patch.dict(os.environ, _clean_env(), clear=True):
        config = EngineConfig.from_env()
    assert config.default_model == "sonnet"
    assert config.default_agent == "CLAUDE_CLI"
    assert config.backend_url == "http://localhost:45557"
    assert config.probe_timeout_seconds == 0.5
    assert config.oneshot_timeout_seconds == 300.0
    assert config.announce_thinking is False


def test_backend_port_env():
    env = {**_clean_env(), "BACKEND_PORT": "8123"}
    with patch.dict(os.environ, env, clear=True):
        assert EngineConfig.from_env().backend_url == "http://localhost:8123"


def test_explicit_overrides():
    env = {
        **_clean_env(),
        "BACKEND_PORT": "8123",
        "KANBAN_PM_BACKEND_URL": "http://kanban.internal",
        "KANBAN_PM_DEFAULT_MODEL": "opus",
        "KANBAN_PM_DEFAULT_AGENT": "codex",
        "KANBAN_PM_ANNOUNCE_THINKING": "true",
        "KANBAN_PM_ONESHOT_TIMEOUT": "12.5",
        "KANBAN_PM_QUEUE_SIZE": "8",
        "KANBAN_PM_BRIDGE_COMMAND": "/opt/mcp_task_server",
    }
    with patch.dict(os.environ, env, clear=True):
        config = EngineConfig.from_env()
    assert config.backend_url == "http://kanban.internal"
    assert config.default_model == "opus"
    assert config.default_agent == "codex"
    assert config.announce_thinking is True
    assert config.oneshot_timeout_seconds == 12.5
    assert config.event_queue_size == 8
    assert config.bridge_command == "/opt/mcp_task_server"


def test_load_yaml_config(tmp_path):
    path = tmp_path / "kanban-pm.yaml"
    path.write_text(yaml.safe_dump({
        "engine": {
            "default_model": "haiku",
            "announce_thinking": True,
            "oneshot_timeout_seconds": 60,
            "event_queue_size": "32",
            "not_a_setting": 1,
        },
        "bridge": {"command": "/opt/bridge", "args": ["--port", 9]},
        "agents": {
            "claude": {"command": "/usr/local/bin/claude"},
            "OPENCODE_CLI": {"enabled": False},
            "cursor": {"command": "cursor"},
        },
    }))

    loaded = load_yaml_config(path, base=EngineConfig())

    assert loaded.engine.default_model == "haiku"
    assert loaded.engine.announce_thinking is True
    assert loaded.engine.oneshot_timeout_seconds == 60.0
    assert loaded.engine.event_queue_size == 32
    assert loaded.engine.bridge_command == "/opt/bridge"
    assert loaded.engine.bridge_args == ["--port", "9"]
    assert set(loaded.agents) == {AgentKind.CLAUDE_CLI, AgentKind.OPENCODE_CLI}
    assert loaded.agents[AgentKind.CLAUDE_CLI].command == "/usr/local/bin/claude"
    assert loaded.agents[AgentKind.OPENCODE_CLI].enabled is False


def test_yaml_string_flags_and_nulls(tmp_path):
    path = tmp_path / "kanban-pm.yaml"
    path.write_text(
        "engine:\n"
        "  announce_thinking: \"no\"\n"
        "  oneshot_timeout_seconds:\n"
        "  event_queue_size: null\n"
        "agents:\n"
        "  opencode:\n"
        "    enabled: \"false\"\n"
        "  codex:\n"
        "    enabled: \"yes\"\n"
        "  gemini:\n"
        "    enabled:\n"
    )

    loaded = load_yaml_config(path, base=EngineConfig(announce_thinking=True))

    assert loaded.engine.announce_thinking is False
    assert loaded.engine.oneshot_timeout_seconds == EngineConfig().oneshot_timeout_seconds
    assert loaded.engine.event_queue_size == EngineConfig().event_queue_size
    assert loaded.agents[AgentKind.OPENCODE_CLI].enabled is False
    assert loaded.agents[AgentKind.CODEX_CLI].enabled is True
    assert loaded.agents[AgentKind.GEMINI_CLI].enabled is True


def test_load_empty_yaml(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    loaded = load_yaml_config(path, base=EngineConfig(default_model="x"))
    assert loaded.engine.default_model == "x"
    assert loaded.agents == {}


def test_missing_yaml_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_yaml_config(tmp_path / "nope.yaml", base=EngineConfig())


def test_registry_applies_agent_overrides(tmp_path):
    path = tmp_path / "agents.yaml"
    path.write_text(
        "agents:\n"
        "  claude:\n"
        "    command: /opt/claude-wrapper\n"
        "  gemini:\n"
        "    enabled: false\n"
    )
    loaded = load_yaml_config(path, base=EngineConfig())
    registry = build_agent_registry(loaded.agents)

    kinds = [d.identifier for d in registry.list()]
    assert AgentKind.GEMINI_CLI not in kinds
    assert registry.get("claude").descriptor.executable == "/opt/claude-wrapper"
    assert registry.count == 3


@pytest.mark.asyncio
async def test_availability_report():
    registry = build_agent_registry(resolver=_FakeResolver({"codex": "/bin/codex"}))
    report = await registry.availability_report()

    assert [(i.agent, i.available) for i in report] == [
        (AgentKind.CLAUDE_CLI, False),
        (AgentKind.CODEX_CLI, True),
        (AgentKind.GEMINI_CLI, False),
        (AgentKind.OPENCODE_CLI, False),
    ]
    assert report[1].to_dict() == {
        "agent": "CODEX_CLI",
        "display_name": "Codex CLI",
        "available": True,
        "supports_streaming": True,
    }
    available = await registry.available()
    assert [d.identifier for d in available] == [AgentKind.CODEX_CLI]


@pytest.mark.asyncio
async def test_probe_never_raises():
    class _Exploding:
        async def resolve(self, name: str) -> str | None:
            raise RuntimeError("resolver crashed")

    registry = build_agent_registry(resolver=_Exploding())
    assert await registry.probe(registry.list()[0]) is False


@pytest.mark.parametrize("value, expected", [
    (None, AgentKind.CLAUDE_CLI),
    ("", AgentKind.CLAUDE_CLI),
    ("CODEX_CLI", AgentKind.CODEX_CLI),
    ("gemini", AgentKind.GEMINI_CLI),
    ("OpenCode", AgentKind.OPENCODE_CLI),
    ("opencode-cli", AgentKind.OPENCODE_CLI),
])
def test_agent_kind_parse(value, expected):
    assert AgentKind.parse(value) is expected


def test_agent_kind_short_name():
    assert AgentKind.GEMINI_CLI.short_name == "gemini"
