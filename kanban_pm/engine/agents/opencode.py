"""OpenCode CLI family.

Runs `opencode run --format json`. OpenCode picks up an alternate
config file from OPENCODE_CONFIG, which is how it finds the tool bridge.

Output lines of interest:
    {"type":"text","part":{"type":"text","text":"..."}}
"""
from __future__ import annotations

from typing import Any

from ..models import AgentDescriptor, AgentKind, ConfigDialect, SessionContext
from .base import AgentFamily, combined_prompt, model_flag, non_empty_str

DESCRIPTOR = AgentDescriptor(
    identifier=AgentKind.OPENCODE_CLI,
    executable="opencode",
    display_name="OpenCode CLI",
    supports_streaming=True,
    config_dialect=ConfigDialect.MCP,
)


def build_argv(context: SessionContext, config_path: str) -> list[str]:
    return [
        "run",
        "--format", "json",
        *model_flag(context.model),
        combined_prompt(context.system_prompt, context.user_content),
    ]


def build_env(config_path: str) -> dict[str, str]:
    return {"OPENCODE_CONFIG": config_path}


def extract_payload(event: dict[str, Any]) -> str | None:
    part = event.get("part")
    if not isinstance(part, dict):
        return None
    return non_empty_str(part.get("text"))


FAMILY = AgentFamily(
    descriptor=DESCRIPTOR,
    build_argv=build_argv,
    extract_payload=extract_payload,
    discriminants=("text",),
    build_env=build_env,
)
