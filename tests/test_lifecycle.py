from __future__ import annotations

import pytest

from kanban_pm.engine.lifecycle import (
    VALID_TRANSITIONS,
    SessionStateMachine,
    validate_transition,
)
from kanban_pm.engine.models import SessionPhase as P


def test_happy_path():
    machine = SessionStateMachine("abcdef123456")
    for phase in (P.SPAWNING, P.STREAMING, P.FINALIZING, P.TERMINATED):
        machine.advance(phase)
    assert machine.is_terminated
    assert machine.history == [
        P.PROVISIONING, P.SPAWNING, P.STREAMING, P.FINALIZING, P.TERMINATED,
    ]


@pytest.mark.parametrize("path", [
    [P.FINALIZING, P.TERMINATED],
    [P.SPAWNING, P.FINALIZING, P.TERMINATED],
])
def test_failure_paths_skip_to_finalizing(path):
    machine = SessionStateMachine("s")
    for phase in path:
        machine.advance(phase)
    assert machine.is_terminated


@pytest.mark.parametrize("current, target", [
    (P.PROVISIONING, P.STREAMING),
    (P.PROVISIONING, P.TERMINATED),
    (P.STREAMING, P.SPAWNING),
    (P.STREAMING, P.TERMINATED),
    (P.FINALIZING, P.STREAMING),
    (P.TERMINATED, P.PROVISIONING),
    (P.TERMINATED, P.FINALIZING),
])
def test_illegal_transitions_rejected(current, target):
    with pytest.raises(ValueError, match="Invalid phase transition"):
        validate_transition(current, target)


def test_terminated_is_final():
    assert VALID_TRANSITIONS[P.TERMINATED] == set()
    with pytest.raises(ValueError, match="none \\(terminal\\)"):
        validate_transition(P.TERMINATED, P.TERMINATED)


def test_no_phase_is_revisited():
    for source, targets in VALID_TRANSITIONS.items():
        assert source not in targets
