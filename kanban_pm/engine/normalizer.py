"""Stdout line normalizer.

Turns one line of agent output into at most one canonical event. JSON
objects dispatch on their top-level "type" through a table built from
the registered families; see agents/ for the per-family shapes.

Special types handled here rather than by a family:
    result      final reply text, promoted only while nothing was streamed
    lifecycle   system/init/thread/turn/step markers, debug-logged and dropped

Objects whose "type" is missing or unknown go to the family registered
under None (role-tagged assistant messages).
"""
from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from .agents.base import AgentFamily, PayloadExtractor
from .aggregator import ResponseAggregator
from .errors import MalformedOutputLine
from .models import Content, NormalizedEvent, Thinking

logger = logging.getLogger(__name__)

RESULT_TYPE = "result"
LIFECYCLE_TYPES = frozenset({
    "system",
    "init",
    "thread.started",
    "turn.started",
    "turn.completed",
    "step_start",
    "step_finish",
})
PROGRESS_TEXT = "AI is processing..."


def progress_event() -> Thinking:
    return Thinking(PROGRESS_TEXT)


def build_dispatch_table(
    families: Iterable[AgentFamily],
) -> dict[str | None, PayloadExtractor]:
    table: dict[str | None, PayloadExtractor] = {}
    for family in families:
        for discriminant in family.discriminants:
            if discriminant in table:
                logger.warning(
                    "Discriminant %r claimed twice; keeping the first (%s)",
                    discriminant, family.descriptor.identifier.value,
                )
                continue
            table[discriminant] = family.extract_payload
    return table


class StreamNormalizer:
    """Stateless line parser; reply state lives in the aggregator.

    With ``plain_text_fallback`` set (agents without a structured
    stream) non-JSON lines become Content and are newline-joined.
    Otherwise they are diagnostics and are dropped.
    """

    def __init__(
        self,
        families: Iterable[AgentFamily],
        *,
        plain_text_fallback: bool = False,
    ) -> None:
        self._table = build_dispatch_table(families)
        self._plain_text_fallback = plain_text_fallback

    def normalize(
        self, line: str, aggregator: ResponseAggregator,
    ) -> NormalizedEvent | None:
        """Parse *line*, fold any payload into *aggregator*, return its event."""
        line = line.strip()
        if not line:
            return None

        if not line.startswith("{"):
            return self._non_json(line, aggregator)

        try:
            decoded = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.debug("%s", MalformedOutputLine(line, exc.msg))
            return self._non_json(line, aggregator)

        if not isinstance(decoded, dict):
            logger.debug("Dropping non-object JSON line: %s", line[:200])
            return None

        text = self.extract(decoded, aggregator)
        if text is None:
            return None
        aggregator.append(text)
        return Content(text)

    def extract(
        self, event: dict[str, Any], aggregator: ResponseAggregator,
    ) -> str | None:
        event_type = event.get("type")
        if not isinstance(event_type, str):
            event_type = None

        if event_type == RESULT_TYPE:
            result = event.get("result")
            if isinstance(result, str) and result and aggregator.is_empty:
                return result
            return None

        if event_type in LIFECYCLE_TYPES:
            logger.debug("CLI lifecycle event: %s", event_type)
            return None

        extractor = self._table.get(event_type)
        if extractor is None:
            extractor = self._table.get(None)
        if extractor is None:
            return None
        return extractor(event)

    def _non_json(
        self, line: str, aggregator: ResponseAggregator,
    ) -> NormalizedEvent | None:
        if self._plain_text_fallback:
            aggregator.append_line(line)
            return Content(line)
        logger.debug("CLI output (non-JSON): %s", line[:200])
        return None
