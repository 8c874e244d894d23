"""Claude CLI family.

Runs `claude --print` in stream-json mode. The MCP config is passed
with --mcp-config and the system prompt has its own flag, so the
user message is the only positional argument.

Output lines of interest:
    {"type":"assistant","message":{"content":[{"type":"text","text":"..."}]}}
    {"type":"result","result":"..."}   (handled by the normalizer)
"""
from __future__ import annotations

from typing import Any

from ..models import AgentDescriptor, AgentKind, ConfigDialect, SessionContext
from .base import AgentFamily, model_flag, non_empty_str

DESCRIPTOR = AgentDescriptor(
    identifier=AgentKind.CLAUDE_CLI,
    executable="claude",
    display_name="Claude CLI",
    supports_streaming=True,
    config_dialect=ConfigDialect.MCP_SERVERS_CAMEL,
    npx_package="@anthropic-ai/claude-code@latest",
)


def build_argv(context: SessionContext, config_path: str) -> list[str]:
    return [
        "--print",
        "--verbose",
        "--output-format", "stream-json",
        "--no-session-persistence",
        "--dangerously-skip-permissions",
        "--mcp-config", config_path,
        *model_flag(context.model),
        "--system-prompt", context.system_prompt,
        context.user_content,
    ]


def extract_payload(event: dict[str, Any]) -> str | None:
    """Return the last non-empty text block of an assistant message."""
    message = event.get("message")
    if not isinstance(message, dict):
        return None
    blocks = message.get("content")
    if not isinstance(blocks, list):
        return None

    extracted = None
    for block in blocks:
        if not isinstance(block, dict) or block.get("type") != "text":
            continue
        text = non_empty_str(block.get("text"))
        if text is not None:
            extracted = text
    return extracted


FAMILY = AgentFamily(
    descriptor=DESCRIPTOR,
    build_argv=build_argv,
    extract_payload=extract_payload,
    discriminants=("assistant",),
)
