"""Codex CLI family.

Runs `codex exec --json --full-auto`. Codex has no system-prompt flag
and reads MCP servers from its own config, so the system prompt is
folded into the single positional prompt.

Output lines of interest:
    {"type":"item.completed","item":{"type":"agent_message","text":"..."}}
    {"type":"item.completed","item":{"type":"reasoning","text":"..."}}  (suppressed)
"""
from __future__ import annotations

import logging
from typing import Any

from ..models import AgentDescriptor, AgentKind, ConfigDialect, SessionContext
from .base import AgentFamily, combined_prompt, model_flag, non_empty_str

logger = logging.getLogger(__name__)

DESCRIPTOR = AgentDescriptor(
    identifier=AgentKind.CODEX_CLI,
    executable="codex",
    display_name="Codex CLI",
    supports_streaming=True,
    config_dialect=ConfigDialect.MCP_SERVERS_SNAKE,
)


def build_argv(context: SessionContext, config_path: str) -> list[str]:
    return [
        "exec",
        "--json",
        "--full-auto",
        *model_flag(context.model, skip_default=True),
        combined_prompt(context.system_prompt, context.user_content),
    ]


def extract_payload(event: dict[str, Any]) -> str | None:
    """Return agent_message text. Reasoning items never leave the process."""
    item = event.get("item")
    if not isinstance(item, dict):
        return None
    item_type = item.get("type")
    if item_type == "reasoning":
        logger.debug("Suppressed codex reasoning item")
        return None
    if item_type != "agent_message":
        return None
    return non_empty_str(item.get("text"))


FAMILY = AgentFamily(
    descriptor=DESCRIPTOR,
    build_argv=build_argv,
    extract_payload=extract_payload,
    discriminants=("item.completed",),
)
