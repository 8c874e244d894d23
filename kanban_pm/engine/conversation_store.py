"""Per-session chat message log.

The orchestrator only ever appends one assistant message per session;
the listing side exists for the CLI and for tests. Two stores are
provided: an in-memory one and an append-only JSONL file per session.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from kanban_pm.shared.models.message import Message, MessageRole
from kanban_pm.shared.services.durable_write import (
    append_line,
    remove_file,
    safe_file_stem,
)

logger = logging.getLogger(__name__)


class ConversationStore(Protocol):
    async def append_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        model: str | None = None,
    ) -> Message:
        ...

    async def list_messages(self, session_id: str) -> list[Message]:
        ...

    async def clear(self, session_id: str) -> None:
        ...


class InMemoryConversationStore:
    """Message log held in process memory.

    Safe for single-event-loop usage. Messages of one session are kept
    in insertion order.
    """

    def __init__(self) -> None:
        self._logs: dict[str, list[Message]] = {}

    async def append_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        model: str | None = None,
    ) -> Message:
        message = Message(
            session_id=session_id, role=role, content=content, model=model,
        )
        self._logs.setdefault(session_id, []).append(message)
        return message

    async def list_messages(self, session_id: str) -> list[Message]:
        return list(self._logs.get(session_id, []))

    async def clear(self, session_id: str) -> None:
        self._logs.pop(session_id, None)


class JsonlConversationStore:
    """Append-only log, one ``<session_id>.jsonl`` file per session.

    Storage layout:
        {base_dir}/{session_id}.jsonl
    """

    def __init__(self, base_dir: str | Path) -> None:
        self._dir = Path(base_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, session_id: str) -> Path:
        return self._dir / f"{safe_file_stem(session_id)}.jsonl"

    async def append_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        model: str | None = None,
    ) -> Message:
        message = Message(
            session_id=session_id, role=role, content=content, model=model,
        )
        path = self._path(session_id)
        append_line(path, json.dumps(message.to_dict()))
        logger.debug(
            "Appended %s message %s to %s", role.value, message.id, path,
        )
        return message

    async def list_messages(self, session_id: str) -> list[Message]:
        path = self._path(session_id)
        if not path.exists():
            return []
        messages: list[Message] = []
        with open(path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    messages.append(Message.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, ValueError) as exc:
                    logger.warning(
                        "Skipping corrupt record %s:%d: %s", path, lineno, exc,
                    )
        return messages

    async def clear(self, session_id: str) -> None:
        remove_file(self._path(session_id))
