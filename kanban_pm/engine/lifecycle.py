"""Chat session lifecycle state machine.

Defines valid transitions and enforces them. Invalid transitions
raise ValueError rather than silently proceeding.

State Diagram:

    PROVISIONING ──> SPAWNING ──> STREAMING ──> FINALIZING ──> TERMINATED
         │               │                          ^
         │               └──────────────────────────┤  (spawn failed)
         └──────────────────────────────────────────┘  (config write failed)

No state is revisited; TERMINATED is final.
"""
from __future__ import annotations

import logging

from .models import SessionPhase

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[SessionPhase, set[SessionPhase]] = {
    SessionPhase.PROVISIONING: {
        SessionPhase.SPAWNING,
        SessionPhase.FINALIZING,
    },
    SessionPhase.SPAWNING: {
        SessionPhase.STREAMING,
        SessionPhase.FINALIZING,
    },
    SessionPhase.STREAMING: {
        SessionPhase.FINALIZING,
    },
    SessionPhase.FINALIZING: {
        SessionPhase.TERMINATED,
    },
    SessionPhase.TERMINATED: set(),
}


def validate_transition(current: SessionPhase, target: SessionPhase) -> None:
    """Validate a phase transition. Raises ValueError if invalid."""
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        allowed_str = ", ".join(s.value for s in allowed) or "none (terminal)"
        raise ValueError(
            f"Invalid phase transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: {allowed_str}"
        )


class SessionStateMachine:
    """Tracks the current phase of one session and its history."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.phase = SessionPhase.PROVISIONING
        self.history: list[SessionPhase] = [SessionPhase.PROVISIONING]

    def advance(self, target: SessionPhase) -> None:
        validate_transition(self.phase, target)
        logger.debug(
            "Session %s: %s -> %s",
            self.session_id[:8], self.phase.value, target.value,
        )
        self.phase = target
        self.history.append(target)

    @property
    def is_terminated(self) -> bool:
        return self.phase == SessionPhase.TERMINATED
