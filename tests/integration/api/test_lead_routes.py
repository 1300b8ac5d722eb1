from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import ProgrammingError

from leaddesk.api.v1 import auth as auth_routes
from leaddesk.api.v1 import bulk as bulk_routes
from leaddesk.api.v1 import health as health_routes
from leaddesk.api.v1 import imports as import_routes
from leaddesk.api.v1 import leads as lead_routes
from leaddesk.auth.jwt import issue_token
from leaddesk.core.config import get_config
from leaddesk.core.exceptions import AggregationUnavailableError, QueryTimeoutError
from leaddesk.main import create_app
from leaddesk.models import UserRole
from leaddesk.repositories.lead_store import LeadStore
from leaddesk.services.bulk_mutation_service import BulkMutationService
from leaddesk.services.count_service import CountService
from leaddesk.services.import_job_service import ImportJobService
from leaddesk.services.job_progress import InMemoryJobEventChannel, JobProgressReporter
from leaddesk.services.lead_query_service import LeadQueryService
from leaddesk.services.unique_values_service import UniqueValuesService

PREFIX = get_config().API_PREFIX


def _bearer(caller) -> dict[str, str]:
    token = issue_token(caller, "access", get_config())
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def services(session_factory, settings, caches):
    return {
        "counts": CountService(session_factory=session_factory, settings=settings, caches=caches),
        "unique": UniqueValuesService(session_factory=session_factory, settings=settings, caches=caches),
        "query": LeadQueryService(session_factory=session_factory, settings=settings, caches=caches),
        "bulk": BulkMutationService(session_factory=session_factory, settings=settings, caches=caches),
        "imports": ImportJobService(session_factory=session_factory, settings=settings, caches=caches),
    }


@pytest.fixture
def client(monkeypatch, services, session_factory):
    monkeypatch.setattr(lead_routes, "get_count_service", lambda: services["counts"])
    monkeypatch.setattr(lead_routes, "get_unique_values_service", lambda: services["unique"])
    monkeypatch.setattr(lead_routes, "get_lead_query_service", lambda: services["query"])
    monkeypatch.setattr(bulk_routes, "get_bulk_mutation_service", lambda: services["bulk"])
    monkeypatch.setattr(import_routes, "get_import_job_service", lambda: services["imports"])

    @contextmanager
    def test_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(auth_routes, "get_db_session", test_session)
    return TestClient(create_app())


def test_health_reports_database_state(client, monkeypatch):
    monkeypatch.setattr(health_routes, "verify_database_connection", lambda: True)
    response = client.get(f"{PREFIX}/health")
    assert response.status_code == 200
    assert response.json()["database"] == "ok"


def test_counts_require_bearer_token(client):
    response = client.post(f"{PREFIX}/leads/counts", json={})
    assert response.status_code == 401

    response = client.post(f"{PREFIX}/leads/counts", json={}, headers={"Authorization": "Token abc"})
    assert response.status_code == 401


def test_counts_are_scoped_to_the_caller(client, seed):
    viewer = seed.user(UserRole.VIEWER)
    seed.leads(2, assigned_to=viewer.user_id)
    seed.leads(4)

    response = client.post(
        f"{PREFIX}/leads/counts",
        json={"filters": {"school": ["North High"]}},
        headers=_bearer(viewer),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["filtered_count"] == 2
    assert body["per_field_counts"]["school"] == {"North High": 2}


def test_offset_query_reports_paging_metadata(client, seed):
    admin = seed.user(UserRole.ADMIN)
    seed.leads(5)

    response = client.post(f"{PREFIX}/leads/query", json={"page": 1, "page_size": 2}, headers=_bearer(admin))

    assert response.status_code == 200
    body = response.json()
    assert len(body["rows"]) == 2
    assert body["total_count"] == 5
    assert body["has_next_page"] is True


def test_oversized_page_and_bad_cursor_are_rejected(client, seed):
    admin = seed.user(UserRole.ADMIN)

    response = client.post(f"{PREFIX}/leads/query", json={"page_size": 5000}, headers=_bearer(admin))
    assert response.status_code == 422

    response = client.post(f"{PREFIX}/leads/scroll", json={"cursor": "garbage"}, headers=_bearer(admin))
    assert response.status_code == 422


def test_scroll_walks_with_cursor(client, seed):
    admin = seed.user(UserRole.ADMIN)
    ids = seed.leads(3)

    first = client.post(f"{PREFIX}/leads/scroll", json={"page_size": 2}, headers=_bearer(admin)).json()
    second = client.post(
        f"{PREFIX}/leads/scroll",
        json={"page_size": 2, "cursor": first["next_cursor"]},
        headers=_bearer(admin),
    ).json()

    assert [row["id"] for row in first["rows"] + second["rows"]] == ids
    assert first["has_next_page"] is True
    assert second["has_next_page"] is False


def test_query_timeout_maps_to_gateway_timeout(client, seed, services, monkeypatch):
    admin = seed.user(UserRole.ADMIN)

    def timed_out(*args, **kwargs):
        raise QueryTimeoutError(5)

    monkeypatch.setattr(services["query"], "query_page", timed_out)
    response = client.post(f"{PREFIX}/leads/query", json={}, headers=_bearer(admin))

    assert response.status_code == 504
    assert "Narrow your filters" in response.json()["detail"]


def test_failed_list_reads_return_labelled_empty_pages(client, seed, monkeypatch):
    admin = seed.user(UserRole.ADMIN)
    seed.leads(3)

    def broken(self, *args, **kwargs):
        raise ProgrammingError("SELECT", {}, Exception("no such column: leads.grade"))

    monkeypatch.setattr(LeadStore, "page", broken)
    monkeypatch.setattr(LeadStore, "keyset_page", broken)

    page = client.post(f"{PREFIX}/leads/query", json={}, headers=_bearer(admin))
    scroll = client.post(f"{PREFIX}/leads/scroll", json={}, headers=_bearer(admin))

    assert page.status_code == 200
    assert page.json()["degraded"] is True
    assert page.json()["rows"] == []
    assert page.json()["total_count"] == 0
    assert "no such column" in page.json()["error"]
    assert scroll.status_code == 200
    assert scroll.json()["degraded"] is True
    assert scroll.json()["next_cursor"] is None


def test_unique_values_degrade_instead_of_failing(client, seed, services, monkeypatch):
    admin = seed.user(UserRole.ADMIN)

    def unavailable(caller):
        raise AggregationUnavailableError("aggregation timed out")

    monkeypatch.setattr(services["unique"], "get_unique_values", unavailable)
    response = client.get(f"{PREFIX}/leads/unique-values", headers=_bearer(admin))

    assert response.status_code == 200
    assert response.json()["degraded"] is True


def test_bulk_routes_are_admin_only(client, seed):
    manager = seed.user(UserRole.MANAGER)
    seed.leads(3)

    response = client.post(f"{PREFIX}/leads/bulk-delete", json={"count": 3}, headers=_bearer(manager))

    assert response.status_code == 403


def test_bulk_assign_splits_equally(client, seed):
    admin = seed.user(UserRole.ADMIN)
    first = seed.user(UserRole.SALES_REP)
    second = seed.user(UserRole.SALES_REP)
    seed.leads(15)

    response = client.post(
        f"{PREFIX}/leads/bulk-assign",
        json={
            "targets": [{"user_id": first.user_id}, {"user_id": second.user_id}],
            "total": 11,
            "equal_distribution": True,
        },
        headers=_bearer(admin),
    )

    assert response.status_code == 200
    body = response.json()
    assert [item["assigned"] for item in body["assignments"]] == [6, 5]
    assert body["job"]["status"] == "completed"


def test_bulk_delete_with_no_matches_reports_failed_job(client, seed):
    admin = seed.user(UserRole.ADMIN)

    response = client.post(
        f"{PREFIX}/leads/bulk-delete",
        json={"count": 5, "filters": {"district": ["Nowhere"]}},
        headers=_bearer(admin),
    )

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["job"]["status"] == "failed"
    assert detail["message"] == "No leads matched the selection."


def test_large_explicit_delete_is_queued_for_the_worker(
    client, seed, services, session_factory, settings, caches, monkeypatch
):
    admin = seed.user(UserRole.ADMIN)
    ids = seed.leads(6)
    services["bulk"] = BulkMutationService(
        session_factory=session_factory,
        settings=replace(settings, BULK_DELETE_BATCH_SIZE=2, BULK_SERVER_SIDE_BATCH_FACTOR=2),
        caches=caches,
    )
    queued = []

    def delay(caller, lead_ids):
        queued.append((caller, lead_ids))
        return SimpleNamespace(id="task-1")

    monkeypatch.setattr(bulk_routes.bulk_delete_leads_task, "delay", delay)

    large = client.post(f"{PREFIX}/leads/bulk-delete", json={"lead_ids": ids}, headers=_bearer(admin))
    small = client.post(f"{PREFIX}/leads/bulk-delete", json={"lead_ids": ids[:3]}, headers=_bearer(admin))

    assert large.status_code == 202
    assert large.json() == {"task_id": "task-1", "status": "queued", "total": 6}
    assert queued == [({"user_id": admin.user_id, "role": "admin", "email": admin.email}, ids)]
    assert small.status_code == 200
    assert small.json()["deleted_count"] == 3


def test_inline_import_returns_finished_job(client, seed):
    manager = seed.user(UserRole.MANAGER)
    rows = [
        {"name": "Asha", "phone": "9800000001", "school": "North High", "district": "Central", "gender": "F", "stream": "Arts"}
    ]

    response = client.post(
        f"{PREFIX}/imports",
        json={"file_name": "walkin.csv", "rows": rows, "run_async": False},
        headers=_bearer(manager),
    )

    assert response.status_code == 202
    job = response.json()
    assert job["status"] == "completed"
    fetched = client.get(f"{PREFIX}/imports/{job['id']}", headers=_bearer(manager))
    assert fetched.json()["success_count"] == 1


def test_import_events_stream_until_the_job_finishes(client, seed, session_factory, monkeypatch):
    manager = seed.user(UserRole.MANAGER)
    rows = [{"name": "Asha", "phone": "9800000001", "school": "North High", "district": "Central", "gender": "F", "stream": "Arts"}]
    job = client.post(
        f"{PREFIX}/imports",
        json={"file_name": "walkin.csv", "rows": rows, "run_async": False},
        headers=_bearer(manager),
    ).json()
    reporter = JobProgressReporter(
        channel=InMemoryJobEventChannel(), session_factory=session_factory, poll_interval_seconds=0.05
    )
    monkeypatch.setattr(import_routes, "get_job_progress_reporter", lambda: reporter)

    response = client.get(f"{PREFIX}/imports/{job['id']}/events", headers=_bearer(manager))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = [line for line in response.text.splitlines() if line.startswith("data: ")]
    assert len(events) == 1
    assert '"status":"completed"' in events[0]

    hidden = client.get(f"{PREFIX}/imports/{job['id']}/events", headers=_bearer(seed.user(UserRole.SALES_REP)))
    assert hidden.status_code == 404


def test_async_import_is_queued(client, seed, monkeypatch):
    manager = seed.user(UserRole.MANAGER)
    queued = []
    monkeypatch.setattr(import_routes.import_leads_task, "delay", lambda job_id, rows: queued.append((job_id, rows)))

    response = client.post(
        f"{PREFIX}/imports",
        json={"file_name": "later.csv", "rows": [{"name": "Ravi"}]},
        headers=_bearer(manager),
    )

    assert response.status_code == 202
    assert response.json()["status"] == "pending"
    assert queued == [(response.json()["id"], [{"name": "Ravi"}])]


def test_dev_token_flow_issues_usable_tokens(client, seed):
    viewer = seed.user(UserRole.VIEWER, email="viewer@example.com")

    issued = client.post(f"{PREFIX}/auth/token", json={"email": "Viewer@Example.com"})
    assert issued.status_code == 200
    access = issued.json()["access_token"]

    counts = client.post(f"{PREFIX}/leads/counts", json={}, headers={"Authorization": f"Bearer {access}"})
    assert counts.status_code == 200

    refreshed = client.post(f"{PREFIX}/auth/refresh", json={"refresh_token": issued.json()["refresh_token"]})
    assert refreshed.status_code == 200
    assert client.post(f"{PREFIX}/auth/refresh", json={"refresh_token": access}).status_code == 401

    unknown = client.post(f"{PREFIX}/auth/token", json={"email": "nobody@example.com"})
    assert unknown.status_code == 401
    assert viewer.email == "viewer@example.com"
