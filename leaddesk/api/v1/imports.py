"""Lead import endpoints for API v1."""

from __future__ import annotations

import queue
from collections.abc import Iterator

from fastapi import APIRouter, Header, status
from fastapi.responses import StreamingResponse

from leaddesk.api.v1._authz import authorize_or_raise, to_http_error
from leaddesk.core.dependencies import get_import_job_service, get_job_progress_reporter
from leaddesk.core.exceptions import LeadDeskException
from leaddesk.schemas.jobs import ImportJobCreate, ImportJobResponse
from leaddesk.tasks.import_tasks import import_leads_task

router = APIRouter(prefix="/imports", tags=["imports"])

KEEP_ALIVE_SECONDS = 15.0


@router.post("", response_model=ImportJobResponse, status_code=status.HTTP_202_ACCEPTED)
def start_import(
    payload: ImportJobCreate,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> ImportJobResponse:
    caller = authorize_or_raise(authorization, scopes=["imports.run"])
    service = get_import_job_service()
    try:
        job = service.create_job(caller, file_name=payload.file_name, bucket_id=payload.bucket_id)
        if payload.run_async:
            import_leads_task.delay(job.id, payload.rows)
            return job
        return service.run_import(job.id, payload.rows)
    except LeadDeskException as exc:
        raise to_http_error(exc) from exc


@router.get("/{job_id}", response_model=ImportJobResponse)
def get_import(
    job_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> ImportJobResponse:
    caller = authorize_or_raise(authorization, scopes=["imports.read"])
    try:
        return get_import_job_service().get_job(caller, job_id)
    except LeadDeskException as exc:
        raise to_http_error(exc) from exc


@router.get("/{job_id}/events")
def import_events(
    job_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> StreamingResponse:
    """Stream job snapshots as server-sent events until the job finishes."""
    caller = authorize_or_raise(authorization, scopes=["imports.read"])
    try:
        get_import_job_service().get_job(caller, job_id)
    except LeadDeskException as exc:
        raise to_http_error(exc) from exc

    updates: queue.Queue[ImportJobResponse] = queue.Queue()
    subscription = get_job_progress_reporter().subscribe(job_id, updates.put)

    def stream() -> Iterator[str]:
        try:
            while True:
                try:
                    update = updates.get(timeout=KEEP_ALIVE_SECONDS)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                yield f"data: {update.model_dump_json()}\n\n"
                if update.is_terminal:
                    break
        finally:
            subscription.unsubscribe()

    return StreamingResponse(stream(), media_type="text/event-stream")
