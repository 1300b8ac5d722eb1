"""Background tasks for lead imports and large bulk deletes.

Neither task retries: both write rows, and a rerun after a partial failure
would act on a different row set.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from leaddesk.auth.scope import CallerIdentity
from leaddesk.core.dependencies import get_bulk_mutation_service, get_import_job_service
from leaddesk.core.exceptions import LeadDeskException
from leaddesk.models import UserRole
from leaddesk.tasks.celery_app import celery_app
from leaddesk.tasks.hooks import after_task, before_task

logger = logging.getLogger(__name__)


def caller_to_payload(caller: CallerIdentity) -> dict[str, Any]:
    return {"user_id": caller.user_id, "role": caller.role.value, "email": caller.email}


def caller_from_payload(payload: dict[str, Any]) -> CallerIdentity:
    return CallerIdentity(user_id=str(payload["user_id"]), role=UserRole(payload["role"]), email=payload.get("email"))


@celery_app.task(name="leads.import")
def import_leads_task(job_id: str, rows: list[dict[str, Any]], trace_id: str | None = None) -> dict[str, Any]:
    context = {"job_id": job_id, "trace_id": trace_id or uuid.uuid4().hex}
    logger.info("task.start", extra=before_task(task_key="leads.import", context=context))
    try:
        job = get_import_job_service().run_import(job_id, rows)
    except LeadDeskException:
        logger.error("task.failed", extra=after_task(task_key="leads.import", context=context, status="failed"))
        raise
    logger.info("task.finish", extra=after_task(task_key="leads.import", context=context, status=job.status.value))
    return job.model_dump(mode="json")


@celery_app.task(name="leads.bulk_delete")
def bulk_delete_leads_task(caller: dict[str, Any], lead_ids: list[str], trace_id: str | None = None) -> dict[str, Any]:
    context = {**caller, "trace_id": trace_id or uuid.uuid4().hex}
    logger.info("task.start", extra=before_task(task_key="leads.bulk_delete", context=context))
    try:
        result = get_bulk_mutation_service().bulk_delete(caller_from_payload(caller), lead_ids=lead_ids)
    except LeadDeskException:
        logger.error("task.failed", extra=after_task(task_key="leads.bulk_delete", context=context, status="failed"))
        raise
    logger.info(
        "task.finish",
        extra=after_task(task_key="leads.bulk_delete", context={**context, "job_id": result.job.job_id}, status="completed"),
    )
    return result.model_dump(mode="json")
