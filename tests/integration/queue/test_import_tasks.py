from __future__ import annotations

import pytest

from leaddesk.core.exceptions import MutationFailedError
from leaddesk.models import UserRole
from leaddesk.services.bulk_mutation_service import BulkMutationService
from leaddesk.services.import_job_service import ImportJobService
from leaddesk.tasks import import_tasks


@pytest.fixture
def import_service(session_factory, settings, caches, monkeypatch):
    service = ImportJobService(session_factory=session_factory, settings=settings, caches=caches)
    monkeypatch.setattr(import_tasks, "get_import_job_service", lambda: service)
    return service


@pytest.fixture
def bulk_service(session_factory, settings, caches, monkeypatch):
    service = BulkMutationService(session_factory=session_factory, settings=settings, caches=caches)
    monkeypatch.setattr(import_tasks, "get_bulk_mutation_service", lambda: service)
    return service


def test_import_task_runs_job_and_returns_json_snapshot(import_service, seed):
    manager = seed.user(UserRole.MANAGER)
    job = import_service.create_job(manager, "queued.csv")
    rows = [
        {"name": "Meera", "phone": "9811111111", "school": "North High", "district": "Central", "gender": "F", "stream": "Science"},
        {"name": "Kabir"},
    ]

    result = import_tasks.import_leads_task.apply(args=(job.id, rows), kwargs={"trace_id": "trace-1"}).get()

    assert result["status"] == "completed"
    assert result["success_count"] == 1
    assert result["errors"][0]["row"] == 2


def test_bulk_delete_task_rebuilds_caller_from_payload(bulk_service, seed):
    admin = seed.user(UserRole.ADMIN)
    ids = seed.leads(3)

    result = import_tasks.bulk_delete_leads_task(import_tasks.caller_to_payload(admin), ids)

    assert result["deleted_count"] == 3
    assert result["job"]["status"] == "completed"


def test_bulk_delete_task_propagates_failed_job(bulk_service, seed):
    admin = seed.user(UserRole.ADMIN)

    with pytest.raises(MutationFailedError):
        import_tasks.bulk_delete_leads_task(import_tasks.caller_to_payload(admin), ["gone"])


def test_caller_payload_round_trip():
    payload = {"user_id": "u-1", "role": "sales_rep", "email": None}
    caller = import_tasks.caller_from_payload(payload)
    assert caller.role is UserRole.SALES_REP
    assert import_tasks.caller_to_payload(caller) == payload
