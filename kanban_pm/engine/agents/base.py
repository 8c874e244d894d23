"""Per-family strategy record for agent CLIs.

Each supported CLI is described by one AgentFamily value: a static
descriptor plus two plain functions, one building the argument vector
and one pulling reply text out of a decoded stdout line. Families are
values, not subclasses; the registry and the normalizer look them up
by AgentKind or by output discriminant.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..models import AgentDescriptor, SessionContext

# (context, config_path) -> argv without the executable itself
ArgvBuilder = Callable[[SessionContext, str], list[str]]
# decoded JSON object -> reply text, or None when the line carries none
PayloadExtractor = Callable[[dict[str, Any]], "str | None"]
# config_path -> extra child environment entries
EnvBuilder = Callable[[str], dict[str, str]]

DEFAULT_MODEL_SENTINEL = "default"


def _no_env(config_path: str) -> dict[str, str]:
    return {}


@dataclass(frozen=True)
class AgentFamily:
    """Strategy record for one agent CLI family."""
    descriptor: AgentDescriptor
    build_argv: ArgvBuilder
    extract_payload: PayloadExtractor
    # Values of the top-level "type" field this family's output uses for
    # reply text. None is the fallback for objects whose "type" is
    # missing or unrecognised.
    discriminants: tuple[str | None, ...] = ()
    build_env: EnvBuilder = field(default=_no_env)


def model_flag(model: str, *, skip_default: bool = False) -> list[str]:
    """Return ["--model", model], or nothing when no model was chosen.

    With skip_default, the "default" sentinel also means "let the CLI
    pick" and the flag is omitted.
    """
    model = (model or "").strip()
    if not model:
        return []
    if skip_default and model == DEFAULT_MODEL_SENTINEL:
        return []
    return ["--model", model]


def combined_prompt(system_prompt: str, user_content: str) -> str:
    """Fold the system prompt into the user message for CLIs without a flag."""
    return f"{system_prompt}\n\n{user_content}"


def non_empty_str(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None
