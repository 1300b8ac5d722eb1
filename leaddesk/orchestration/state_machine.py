"""Canonical state transition helpers for job records."""

from __future__ import annotations

import enum
from collections.abc import Mapping

from leaddesk.models.enums import JobStatus


class InvalidTransitionError(ValueError):
    """Raised when a disallowed state transition is attempted."""


def _key(state: str | enum.Enum) -> str:
    return state.value if isinstance(state, enum.Enum) else str(state)


class StateMachine:
    """Transition table with terminal-state awareness.

    A state with no outgoing transitions is terminal.
    """

    def __init__(self, transitions: Mapping[str, set[str]]) -> None:
        self._transitions = {_key(state): {_key(target) for target in targets} for state, targets in transitions.items()}

    def can_transition(self, current: str, target: str) -> bool:
        return _key(target) in self._transitions.get(_key(current), set())

    def assert_transition(self, current: str, target: str) -> None:
        if not self.can_transition(current=current, target=target):
            raise InvalidTransitionError(f"Transition not allowed: {_key(current)} -> {_key(target)}")

    def is_terminal(self, state: str) -> bool:
        return not self._transitions.get(_key(state))


# Shared by bulk mutation jobs and import jobs.
JOB_STATE_MACHINE = StateMachine(
    {
        JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED},
        JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
        JobStatus.COMPLETED: set(),
        JobStatus.FAILED: set(),
    }
)
