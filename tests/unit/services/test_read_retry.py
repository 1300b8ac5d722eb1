from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from leaddesk.services.retry import run_read_with_retry


def _operational() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("connection reset"))


def test_transient_errors_are_retried_until_success():
    attempts = []

    def flaky() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise _operational()
        return "rows"

    assert run_read_with_retry(flaky, max_retries=2, base_backoff_seconds=0.0) == "rows"
    assert len(attempts) == 3


def test_gives_up_after_max_retries():
    attempts = []

    def always_down() -> str:
        attempts.append(1)
        raise _operational()

    with pytest.raises(OperationalError):
        run_read_with_retry(always_down, max_retries=1, base_backoff_seconds=0.0)
    assert len(attempts) == 2


def test_non_transient_errors_are_not_retried():
    attempts = []

    def broken() -> str:
        attempts.append(1)
        raise IntegrityError("INSERT", {}, Exception("constraint"))

    with pytest.raises(IntegrityError):
        run_read_with_retry(broken, max_retries=3, base_backoff_seconds=0.0)
    assert len(attempts) == 1
