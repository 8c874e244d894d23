"""Core data models for the CLI agent orchestrator.

All dataclasses and enums shared across the engine. Single source of
truth to avoid circular imports.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .errors import UnknownAgentError


class AgentKind(str, Enum):
    """Supported agent CLI families. Values are the wire identifiers."""
    CLAUDE_CLI = "CLAUDE_CLI"
    CODEX_CLI = "CODEX_CLI"
    GEMINI_CLI = "GEMINI_CLI"
    OPENCODE_CLI = "OPENCODE_CLI"

    @classmethod
    def parse(cls, value: str | AgentKind | None) -> AgentKind:
        """Parse a wire identifier or short name ("codex") into a kind.

        None and empty strings map to the default, Claude CLI.
        """
        if isinstance(value, AgentKind):
            return value
        if not value:
            return cls.CLAUDE_CLI
        normalized = value.strip().upper().replace("-", "_")
        if normalized in cls.__members__:
            return cls[normalized]
        short = f"{normalized}_CLI"
        if short in cls.__members__:
            return cls[short]
        raise UnknownAgentError(value, [k.value for k in cls])

    @property
    def short_name(self) -> str:
        return self.value.removesuffix("_CLI").lower()


class ConfigDialect(str, Enum):
    """Top-level key each family expects its MCP server map under."""
    MCP_SERVERS_CAMEL = "mcpServers"
    MCP_SERVERS_SNAKE = "mcp_servers"
    MCP = "mcp"


class SessionPhase(str, Enum):
    """Session lifecycle phases. See lifecycle.py for transition rules."""
    PROVISIONING = "provisioning"
    SPAWNING = "spawning"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class AgentDescriptor:
    """Static description of one agent CLI."""
    identifier: AgentKind
    executable: str
    display_name: str
    supports_streaming: bool
    config_dialect: ConfigDialect
    # Package run through `npx -y` when the executable itself is missing.
    npx_package: str | None = None


@dataclass(frozen=True)
class AgentInfo:
    """Availability report entry for one agent."""
    agent: AgentKind
    display_name: str
    available: bool
    supports_streaming: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent": self.agent.value,
            "display_name": self.display_name,
            "available": self.available,
            "supports_streaming": self.supports_streaming,
        }


@dataclass(frozen=True)
class SessionContext:
    """Inputs for one chat session. Owned by a single start_session call."""
    session_id: str
    model: str
    system_prompt: str
    user_content: str
    agent: AgentDescriptor


@dataclass(frozen=True)
class EphemeralConfig:
    """A written MCP config file scoped to one session."""
    session_id: str
    path: str
    payload: dict[str, Any]


@dataclass
class ProcessHandle:
    """The running agent process and how it was started."""
    process: asyncio.subprocess.Process
    argv: list[str]
    executable_path: str
    used_npx_fallback: bool = False

    @property
    def pid(self) -> int:
        return self.process.pid


# ── Canonical events ──


@dataclass(frozen=True)
class Content:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "content", "content": self.text, "error": None}


@dataclass(frozen=True)
class Thinking:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "thinking", "content": self.text, "error": None}


@dataclass(frozen=True)
class Error:
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "error", "content": None, "error": self.message}


@dataclass(frozen=True)
class Done:
    def to_dict(self) -> dict[str, Any]:
        return {"type": "done", "content": None, "error": None}


NormalizedEvent = Union[Content, Thinking, Error, Done]


@dataclass
class OneShotResult:
    """Result of a bounded, non-streaming agent run."""
    text: str
    success: bool = True
    error: str | None = None
    exit_code: int | None = None
    events: list[NormalizedEvent] = field(default_factory=list)
