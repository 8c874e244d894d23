from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from kanban_pm.engine.agents import claude, opencode
from kanban_pm.engine.errors import ExecutableNotFound, SpawnFailed
from kanban_pm.engine.launcher import ProcessLauncher
from kanban_pm.engine.models import ProcessHandle, SessionContext


class _FakeResolver:
    def __init__(self, paths: dict[str, str]) -> None:
        self._paths = paths

    async def resolve(self, name: str) -> str | None:
        return self._paths.get(name)


class _FakeProcess:
    pid = 1234


def _context(family) -> SessionContext:
    return SessionContext("s", "m", "SYS", "USER", family.DESCRIPTOR)


@pytest.mark.asyncio
async def test_launch_returns_handle():
    launcher = ProcessLauncher(_FakeResolver({"claude": "/bin/claude"}))
    with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=_FakeProcess())) as spawn:
        handle = await launcher.launch(claude.FAMILY, _context(claude), "/tmp/c.json")

    assert isinstance(handle, ProcessHandle)
    assert handle.pid == 1234
    assert handle.executable_path == "/bin/claude"
    assert not handle.used_npx_fallback
    assert list(spawn.call_args.args) == handle.argv
    assert handle.argv[0] == "/bin/claude"


@pytest.mark.asyncio
async def test_opencode_gets_config_env(monkeypatch):
    monkeypatch.setenv("KANBAN_TEST_MARKER", "1")
    launcher = ProcessLauncher(_FakeResolver({"opencode": "/bin/opencode"}))
    with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=_FakeProcess())) as spawn:
        await launcher.launch(opencode.FAMILY, _context(opencode), "/tmp/o.json")

    env = spawn.call_args.kwargs["env"]
    assert env["OPENCODE_CONFIG"] == "/tmp/o.json"
    assert env["KANBAN_TEST_MARKER"] == "1"


@pytest.mark.asyncio
async def test_missing_everything_returns_not_found():
    launcher = ProcessLauncher(_FakeResolver({}))
    result = await launcher.launch(claude.FAMILY, _context(claude), "/tmp/c.json")
    assert isinstance(result, ExecutableNotFound)
    assert str(result) == "Claude CLI not found. Please install it first."


@pytest.mark.asyncio
async def test_os_error_returns_spawn_failed():
    launcher = ProcessLauncher(_FakeResolver({"claude": "/bin/claude"}))
    with patch(
        "asyncio.create_subprocess_exec",
        AsyncMock(side_effect=FileNotFoundError("No such file or directory")),
    ):
        result = await launcher.launch(claude.FAMILY, _context(claude), "/tmp/c.json")
    assert isinstance(result, SpawnFailed)
    assert str(result) == "Failed to spawn CLI: No such file or directory"


@pytest.mark.asyncio
async def test_nul_byte_in_argv_returns_spawn_failed():
    launcher = ProcessLauncher(_FakeResolver({"claude": "/bin/claude"}))
    context = SessionContext("s", "m", "SYS", "hi\x00there", claude.DESCRIPTOR)
    with patch(
        "asyncio.create_subprocess_exec",
        AsyncMock(side_effect=ValueError("embedded null byte")),
    ):
        result = await launcher.launch(claude.FAMILY, context, "/tmp/c.json")
    assert isinstance(result, SpawnFailed)
    assert str(result) == "Failed to spawn CLI: embedded null byte"


@pytest.mark.asyncio
async def test_npx_prefix():
    launcher = ProcessLauncher(_FakeResolver({"npx": "/bin/npx"}))
    path, prefix, used_npx = await launcher.resolve_command(claude.FAMILY)
    assert path == "/bin/npx"
    assert prefix == ["/bin/npx", "-y", "@anthropic-ai/claude-code@latest"]
    assert used_npx
