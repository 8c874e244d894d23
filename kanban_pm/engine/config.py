"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via KANBAN_PM_* env vars.
The backend URL follows the server's BACKEND_PORT variable.
"""
from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_BACKEND_PORT = "45557"


_TRUE_STRINGS = {"1", "true", "yes"}


def parse_flag(value: object) -> bool:
    """Booleans pass through; strings follow the env var rule."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _env_flag(name: str) -> bool:
    return parse_flag(os.getenv(name, ""))


@dataclass
class EngineConfig:
    """Orchestrator configuration."""

    # Model passed to the agent when the caller does not choose one.
    default_model: str = "sonnet"
    default_agent: str = "CLAUDE_CLI"

    # Kanban backend the tool bridge talks to.
    backend_url: str = f"http://localhost:{DEFAULT_BACKEND_PORT}"

    # Command the agent runs to reach the tool bridge. Empty means
    # "<python> -m kanban_pm.engine.mcp_server.task_bridge".
    bridge_command: str | None = None
    bridge_args: list[str] = field(default_factory=list)

    # Directory for ephemeral MCP config files.
    config_dir: str = field(default_factory=tempfile.gettempdir)

    # PATH probe budget for executable resolution.
    probe_timeout_seconds: float = 0.5

    # Max bytes per stdout/stderr line. stream-json lines carrying
    # whole tool results can be large.
    stream_limit_bytes: int = 16 * 1024 * 1024

    # Bounded size of the caller-facing event channel.
    event_queue_size: int = 256

    # Emit a Thinking("AI is processing...") event when streaming starts.
    announce_thinking: bool = False

    # Total process wait for one-shot (non-streaming) runs.
    oneshot_timeout_seconds: float = 300.0

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load configuration from KANBAN_PM_* environment variables."""
        overrides = {
            k: v for k, v in os.environ.items() if k.startswith("KANBAN_PM_")
        }
        if overrides:
            logger.info(
                "EngineConfig.from_env: KANBAN_PM_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(overrides.items())),
            )
        else:
            logger.debug("EngineConfig.from_env: no KANBAN_PM_* env vars set, using defaults")

        backend_port = os.getenv("BACKEND_PORT", DEFAULT_BACKEND_PORT)
        config = cls(
            default_model=os.getenv(
                "KANBAN_PM_DEFAULT_MODEL", cls.default_model
            ),
            default_agent=os.getenv(
                "KANBAN_PM_DEFAULT_AGENT", cls.default_agent
            ),
            backend_url=os.getenv(
                "KANBAN_PM_BACKEND_URL", f"http://localhost:{backend_port}"
            ),
            bridge_command=os.getenv("KANBAN_PM_BRIDGE_COMMAND") or None,
            config_dir=os.getenv("KANBAN_PM_CONFIG_DIR") or tempfile.gettempdir(),
            probe_timeout_seconds=float(os.getenv(
                "KANBAN_PM_PROBE_TIMEOUT", str(cls.probe_timeout_seconds)
            )),
            stream_limit_bytes=int(os.getenv(
                "KANBAN_PM_STREAM_LIMIT", str(cls.stream_limit_bytes)
            )),
            event_queue_size=int(os.getenv(
                "KANBAN_PM_QUEUE_SIZE", str(cls.event_queue_size)
            )),
            announce_thinking=_env_flag("KANBAN_PM_ANNOUNCE_THINKING"),
            oneshot_timeout_seconds=float(os.getenv(
                "KANBAN_PM_ONESHOT_TIMEOUT", str(cls.oneshot_timeout_seconds)
            )),
            log_level=os.getenv("KANBAN_PM_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "EngineConfig.from_env: model=%s agent=%s backend=%s log_level=%s",
            config.default_model, config.default_agent,
            config.backend_url, config.log_level,
        )
        return config
