"""Bulk lead mutation endpoints for API v1."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header, Response, status

from leaddesk.api.v1._authz import authorize_or_raise, to_http_error
from leaddesk.core.dependencies import get_bulk_mutation_service
from leaddesk.core.exceptions import LeadDeskException, ValidationError
from leaddesk.schemas.bulk import (
    BulkAssignRequest,
    BulkAssignResult,
    BulkDeleteQueued,
    BulkDeleteRequest,
    BulkDeleteResult,
)
from leaddesk.tasks.import_tasks import bulk_delete_leads_task, caller_to_payload

router = APIRouter(prefix="/leads", tags=["bulk"])
logger = logging.getLogger(__name__)


@router.post("/bulk-assign", response_model=BulkAssignResult)
def bulk_assign(
    payload: BulkAssignRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> BulkAssignResult:
    caller = authorize_or_raise(authorization, scopes=["leads.bulk"])
    try:
        return get_bulk_mutation_service().bulk_assign(
            caller,
            targets=payload.targets,
            total=payload.total,
            lead_ids=payload.lead_ids,
            criteria=payload.filters,
            equal_distribution=payload.equal_distribution,
        )
    except LeadDeskException as exc:
        raise to_http_error(exc) from exc


@router.post("/bulk-delete", response_model=BulkDeleteResult | BulkDeleteQueued)
def bulk_delete(
    payload: BulkDeleteRequest,
    response: Response,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> BulkDeleteResult | BulkDeleteQueued:
    """Delete inline, or queue explicit id lists above the server-side threshold."""
    caller = authorize_or_raise(authorization, scopes=["leads.bulk"])
    service = get_bulk_mutation_service()
    try:
        if payload.lead_ids is not None:
            lead_ids = list(dict.fromkeys(payload.lead_ids))
            if len(lead_ids) > service.settings.server_side_delete_threshold:
                if len(lead_ids) > service.settings.BULK_MAX_IDS:
                    raise ValidationError(f"At most {service.settings.BULK_MAX_IDS} lead ids can be mutated at once.")
                task = bulk_delete_leads_task.delay(caller_to_payload(caller), lead_ids)
                logger.info(
                    "bulk.delete.queued",
                    extra={
                        "event": "bulk.delete.queued",
                        "user_id": caller.user_id,
                        "task_id": task.id,
                        "total": len(lead_ids),
                    },
                )
                response.status_code = status.HTTP_202_ACCEPTED
                return BulkDeleteQueued(task_id=task.id, total=len(lead_ids))
        return service.bulk_delete(
            caller,
            lead_ids=payload.lead_ids,
            count=payload.count,
            criteria=payload.filters,
        )
    except LeadDeskException as exc:
        raise to_http_error(exc) from exc
