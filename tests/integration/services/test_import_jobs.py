from __future__ import annotations

import threading
from dataclasses import replace

import pytest

from leaddesk.core.exceptions import AuthorizationRequiredError, NotFoundError
from leaddesk.models import JobStatus, Lead, UserRole
from leaddesk.schemas.jobs import ImportJobResponse
from leaddesk.services.import_job_service import ImportJobService
from leaddesk.services.job_progress import InMemoryJobEventChannel, JobProgressReporter


def _row(index: int, **overrides):
    row = {
        "name": f"Student {index}",
        "phone": f"98{index:08d}",
        "school": "North High",
        "district": "Central",
        "gender": "F",
        "stream": "Science",
    }
    row.update(overrides)
    return row


def _snapshot(status: JobStatus, processed: int, total: int = 10) -> ImportJobResponse:
    return ImportJobResponse(
        id="job-1",
        file_name="leads.csv",
        status=status,
        total_rows=total,
        processed_rows=processed,
    )


@pytest.fixture
def channel():
    return InMemoryJobEventChannel()


@pytest.fixture
def import_service(session_factory, settings, caches, channel):
    return ImportJobService(
        session_factory=session_factory,
        settings=replace(settings, IMPORT_BATCH_SIZE=2),
        caches=caches,
        channel=channel,
    )


def test_import_runs_in_batches_and_publishes_progress(import_service, seed, channel, session_factory, caches):
    manager = seed.user(UserRole.MANAGER)
    job = import_service.create_job(manager, "spring.csv")
    published = []
    channel.listen(job.id, published.append)

    result = import_service.run_import(job.id, [_row(index) for index in range(5)])

    assert result.status is JobStatus.COMPLETED
    assert (result.total_rows, result.processed_rows, result.success_count) == (5, 5, 5)
    progress = [payload["processed_rows"] for payload in published]
    assert progress == sorted(progress)
    assert 2 in progress and 4 in progress
    assert published[-1]["status"] == "completed"
    assert caches.invalidation_count == 1
    with session_factory() as session:
        assert session.query(Lead).filter(Lead.created_by == manager.user_id).count() == 5


def test_custom_field_columns_map_by_label_or_name(import_service, seed, session_factory):
    manager = seed.user(UserRole.MANAGER)
    bucket_id = seed.bucket("Scholarships", [("percent_score", "Percent Score"), ("board", "Board")])
    job = import_service.create_job(manager, "scores.csv", bucket_id=bucket_id)

    import_service.run_import(job.id, [_row(1, **{"Percent Score": "91", "board": "CBSE", "unmapped": "x"})])

    with session_factory() as session:
        lead = session.query(Lead).one()
    assert lead.custom_fields == {"percent_score": "91", "board": "CBSE"}
    assert lead.bucket_id == bucket_id


def test_rejected_rows_are_reported_with_one_based_numbers(import_service, seed):
    manager = seed.user(UserRole.MANAGER)
    job = import_service.create_job(manager, "partial.csv")

    result = import_service.run_import(job.id, [_row(1), _row(2, phone=""), _row(3)])

    assert result.status is JobStatus.COMPLETED
    assert (result.success_count, result.failed_count) == (2, 1)
    assert result.errors == [{"row": 2, "error": "Missing required fields: phone"}]


def test_job_fails_when_every_row_fails(session_factory, settings, caches, seed):
    manager = seed.user(UserRole.MANAGER)
    service = ImportJobService(
        session_factory=session_factory,
        settings=replace(settings, MAX_REPORTED_ERRORS=3),
        caches=caches,
    )
    job = service.create_job(manager, "broken.csv")

    result = service.run_import(job.id, [{"name": f"Nameless {index}"} for index in range(6)])

    assert result.status is JobStatus.FAILED
    assert result.failed_count == 6
    assert len(result.errors) == 3
    assert caches.invalidation_count == 0


def test_unexpected_error_marks_job_failed(import_service, seed, monkeypatch):
    manager = seed.user(UserRole.MANAGER)
    job = import_service.create_job(manager, "boom.csv")

    def explode(*args, **kwargs):
        raise RuntimeError("parser crashed")

    monkeypatch.setattr(ImportJobService, "build_lead_row", staticmethod(explode))
    with pytest.raises(RuntimeError):
        import_service.run_import(job.id, [_row(1)])

    assert import_service.get_job(manager, job.id).status is JobStatus.FAILED


def test_job_visibility_and_permissions(import_service, seed):
    manager = seed.user(UserRole.MANAGER)
    other_rep = seed.user(UserRole.SALES_REP)
    admin = seed.user(UserRole.ADMIN)
    job = import_service.create_job(manager, "mine.csv")

    assert import_service.get_job(admin, job.id).id == job.id
    with pytest.raises(NotFoundError):
        import_service.get_job(other_rep, job.id)
    with pytest.raises(AuthorizationRequiredError):
        import_service.create_job(other_rep, "nope.csv")
    with pytest.raises(NotFoundError):
        import_service.create_job(manager, "orphan.csv", bucket_id="no-such-bucket")


def test_reporter_delivers_terminal_state_once(channel):
    reporter = JobProgressReporter(channel, job_reader=lambda job_id: None, poll_interval_seconds=30)
    received = []
    subscription = reporter.subscribe("job-1", received.append)

    channel.publish("job-1", _snapshot(JobStatus.PROCESSING, 4).model_dump(mode="json"))
    channel.publish("job-1", _snapshot(JobStatus.PROCESSING, 2).model_dump(mode="json"))
    channel.publish("job-1", _snapshot(JobStatus.COMPLETED, 10).model_dump(mode="json"))
    channel.publish("job-1", _snapshot(JobStatus.COMPLETED, 10).model_dump(mode="json"))

    assert [update.processed_rows for update in received] == [4, 10]
    assert received[-1].status is JobStatus.COMPLETED
    assert subscription.terminal_update is received[-1]
    assert not subscription.active
    assert channel.listener_count("job-1") == 0


def test_polling_finishes_subscription_without_push_events(channel):
    reads = []

    def reader(job_id: str) -> ImportJobResponse:
        reads.append(job_id)
        return _snapshot(JobStatus.FAILED, 10)

    reporter = JobProgressReporter(channel, job_reader=reader, poll_interval_seconds=0.01)
    done = threading.Event()
    received = []

    def on_update(update: ImportJobResponse) -> None:
        received.append(update)
        done.set()

    subscription = reporter.subscribe("job-1", on_update)

    assert done.wait(timeout=2)
    assert subscription.wait(timeout=2)
    assert [update.status for update in received] == [JobStatus.FAILED]
    assert channel.listener_count("job-1") == 0


def test_unsubscribe_stops_delivery(channel):
    reporter = JobProgressReporter(channel, job_reader=lambda job_id: None, poll_interval_seconds=30)
    received = []
    subscription = reporter.subscribe("job-1", received.append)

    subscription.unsubscribe()
    channel.publish("job-1", _snapshot(JobStatus.PROCESSING, 3).model_dump(mode="json"))

    assert received == []
    assert channel.listener_count("job-1") == 0


def test_handler_errors_do_not_break_the_subscription(channel):
    reporter = JobProgressReporter(channel, job_reader=lambda job_id: None, poll_interval_seconds=30)
    seen = []

    def flaky(update: ImportJobResponse) -> None:
        seen.append(update.processed_rows)
        if update.processed_rows == 1:
            raise RuntimeError("render failed")

    subscription = reporter.subscribe("job-1", flaky)
    channel.publish("job-1", _snapshot(JobStatus.PROCESSING, 1).model_dump(mode="json"))
    channel.publish("job-1", _snapshot(JobStatus.PROCESSING, 5).model_dump(mode="json"))

    assert seen == [1, 5]
    assert subscription.active
    subscription.unsubscribe()


def test_reporter_reads_job_records_from_the_database(session_factory, seed, channel, import_service):
    manager = seed.user(UserRole.MANAGER)
    job = import_service.create_job(manager, "db.csv")
    import_service.run_import(job.id, [_row(1)])
    reporter = JobProgressReporter(channel, session_factory=session_factory, poll_interval_seconds=0.01)
    done = threading.Event()
    received = []

    subscription = reporter.subscribe(job.id, lambda update: (received.append(update), done.set()))

    assert done.wait(timeout=2)
    assert subscription.wait(timeout=2)
    assert received[0].status is JobStatus.COMPLETED
    assert received[0].success_count == 1
