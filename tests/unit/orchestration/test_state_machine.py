from __future__ import annotations

import pytest

from leaddesk.models import JobStatus
from leaddesk.orchestration.state_machine import JOB_STATE_MACHINE, InvalidTransitionError, StateMachine


def test_state_machine_allows_valid_transition():
    sm = StateMachine({"new": {"running"}, "running": {"completed"}})
    assert sm.can_transition("new", "running") is True
    sm.assert_transition("new", "running")


def test_state_machine_rejects_invalid_transition():
    sm = StateMachine({"new": {"running"}})
    with pytest.raises(InvalidTransitionError):
        sm.assert_transition("new", "completed")


def test_job_lifecycle_is_pending_processing_then_terminal():
    JOB_STATE_MACHINE.assert_transition(JobStatus.PENDING, JobStatus.PROCESSING)
    JOB_STATE_MACHINE.assert_transition(JobStatus.PROCESSING, JobStatus.COMPLETED)
    JOB_STATE_MACHINE.assert_transition("processing", "failed")
    with pytest.raises(InvalidTransitionError):
        JOB_STATE_MACHINE.assert_transition(JobStatus.COMPLETED, JobStatus.PROCESSING)
    assert JOB_STATE_MACHINE.is_terminal(JobStatus.FAILED)
    assert not JOB_STATE_MACHINE.is_terminal(JobStatus.PROCESSING)
