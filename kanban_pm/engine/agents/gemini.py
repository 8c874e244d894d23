"""Gemini CLI family.

Runs `gemini --output-format stream-json --yolo`. Like Codex it has no
system-prompt flag, so both prompts travel as one positional argument.

Output lines of interest:
    {"type":"message","role":"assistant","content":"...","delta":true}
    {"role":"assistant","content":"..."}   (role-tagged, no "type")
"""
from __future__ import annotations

from typing import Any

from ..models import AgentDescriptor, AgentKind, ConfigDialect, SessionContext
from .base import AgentFamily, combined_prompt, model_flag, non_empty_str

DESCRIPTOR = AgentDescriptor(
    identifier=AgentKind.GEMINI_CLI,
    executable="gemini",
    display_name="Gemini CLI",
    supports_streaming=True,
    config_dialect=ConfigDialect.MCP_SERVERS_CAMEL,
)


def build_argv(context: SessionContext, config_path: str) -> list[str]:
    return [
        "--output-format", "stream-json",
        "--yolo",
        *model_flag(context.model, skip_default=True),
        combined_prompt(context.system_prompt, context.user_content),
    ]


def extract_payload(event: dict[str, Any]) -> str | None:
    if event.get("role") != "assistant":
        return None
    return non_empty_str(event.get("content"))


FAMILY = AgentFamily(
    descriptor=DESCRIPTOR,
    build_argv=build_argv,
    extract_payload=extract_payload,
    discriminants=("message", None),
)
