"""CLI entry point for the PM chat orchestrator.

Usage:
    kanban-pm agents
    kanban-pm chat "Break the login feature into tasks"
    kanban-pm chat --agent codex --model gpt-5 "Plan the next sprint"
    kanban-pm chat --system-prompt-file pm_prompt.md --store ./chats "..."
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .agents.registry import AgentRegistry, build_agent_registry
from .config import EngineConfig
from .conversation_store import InMemoryConversationStore, JsonlConversationStore
from .models import Content, Error, Thinking
from .oneshot import run_once
from .orchestrator import CliChatOrchestrator
from .resolver import PathResolver
from .yaml_config import load_yaml_config

DEFAULT_SYSTEM_PROMPT = (
    "You are a project manager assistant for a Kanban board. Use the "
    "task tools to inspect, create and update tasks when asked."
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kanban-pm",
        description="Run PM chat turns through locally installed agent CLIs",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML config file (engine, bridge and agents sections)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    agents = sub.add_parser("agents", help="List agent CLIs and availability")
    agents.add_argument(
        "--json", action="store_true", help="Print the report as JSON",
    )

    chat = sub.add_parser("chat", help="Send one message and stream the reply")
    chat.add_argument("message", help="The user message")
    chat.add_argument(
        "--agent", "-a",
        default=None,
        help="claude, codex, gemini or opencode (default: from config)",
    )
    chat.add_argument(
        "--model", "-m",
        default=None,
        help="Model passed to the agent (default: from config)",
    )
    prompt = chat.add_mutually_exclusive_group()
    prompt.add_argument("--system-prompt", default=None)
    prompt.add_argument(
        "--system-prompt-file", default=None,
        help="Read the system prompt from a file",
    )
    chat.add_argument("--session-id", default=None)
    chat.add_argument(
        "--store",
        default=None,
        help="Directory for JSONL message logs (default: in memory)",
    )
    chat.add_argument(
        "--oneshot",
        action="store_true",
        help="Wait for the whole reply instead of streaming it",
    )
    chat.add_argument(
        "--json",
        action="store_true",
        help="Print each event as a JSON line",
    )
    return parser


def _resolve_system_prompt(inline: str | None, file_path: str | None) -> str:
    if file_path:
        p = Path(file_path)
        if not p.is_file():
            print(f"Error: System prompt file not found: {file_path}", file=sys.stderr)
            sys.exit(1)
        return p.read_text(encoding="utf-8").strip()
    return inline if inline is not None else DEFAULT_SYSTEM_PROMPT


def _load(config_path: str | None) -> tuple[EngineConfig, AgentRegistry]:
    if config_path:
        loaded = load_yaml_config(config_path)
        config = loaded.engine
        agent_configs = loaded.agents
    else:
        config = EngineConfig.from_env()
        agent_configs = {}
    resolver = PathResolver(config.probe_timeout_seconds)
    return config, build_agent_registry(agent_configs, resolver)


async def _list_agents(registry: AgentRegistry, as_json: bool) -> int:
    report = await registry.availability_report()
    if as_json:
        print(json.dumps([info.to_dict() for info in report], indent=2))
        return 0
    for info in report:
        mark = "available" if info.available else "not installed"
        print(f"{info.agent.short_name:<10} {info.display_name:<14} {mark}")
    return 0


async def _chat(args: argparse.Namespace, config: EngineConfig, registry: AgentRegistry) -> int:
    store = (
        JsonlConversationStore(args.store) if args.store
        else InMemoryConversationStore()
    )
    agent = args.agent or config.default_agent
    system_prompt = _resolve_system_prompt(args.system_prompt, args.system_prompt_file)

    if args.oneshot:
        result = await run_once(
            registry, agent, args.model, system_prompt, args.message,
            config=config, store=store, session_id=args.session_id,
        )
        events = result.events
    else:
        orchestrator = CliChatOrchestrator(registry, store, config)
        events = []
        async for event in orchestrator.start_session(
            agent, args.model, system_prompt, args.message, args.session_id,
        ):
            events.append(event)
            _print_event(event, args.json, live=True)
        await orchestrator.wait_closed()

    if args.oneshot:
        for event in events:
            _print_event(event, args.json, live=False)
    return 1 if any(isinstance(e, Error) for e in events) else 0


def _print_event(event, as_json: bool, live: bool) -> None:
    if as_json:
        print(json.dumps(event.to_dict()), flush=True)
    elif isinstance(event, Content):
        print(event.text, flush=live)
    elif isinstance(event, Thinking):
        print(f"[{event.text}]", file=sys.stderr)
    elif isinstance(event, Error):
        print(f"Error: {event.message}", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)

    # Configure logging (stderr keeps stdout for the reply)
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    config, registry = _load(args.config)
    if not args.verbose:
        logging.getLogger().setLevel(config.log_level.upper())

    try:
        if args.command == "agents":
            code = asyncio.run(_list_agents(registry, args.json))
        else:
            code = asyncio.run(_chat(args, config, registry))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    main()
