"""Reply buffer for one session."""
from __future__ import annotations


class ResponseAggregator:
    """Accumulates the reply text as payloads arrive.

    Exactly one writer per session: the stdout reader. Streamed
    fragments are joined with a single space unless the fragment
    already starts with whitespace; plain-text fallback lines are
    joined with newlines.
    """

    def __init__(self) -> None:
        self._parts: list[str] = []

    @property
    def is_empty(self) -> bool:
        return not self._parts

    def append(self, text: str) -> None:
        if not text:
            return
        if self._parts and not text[0].isspace():
            self._parts.append(" ")
        self._parts.append(text)

    def append_line(self, text: str) -> None:
        if not text:
            return
        if self._parts:
            self._parts.append("\n")
        self._parts.append(text)

    def snapshot(self) -> str:
        return "".join(self._parts)
