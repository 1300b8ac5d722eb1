"""Lead read endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Header

from leaddesk.api.v1._authz import authorize_or_raise, to_http_error
from leaddesk.core.dependencies import get_count_service, get_lead_query_service, get_unique_values_service
from leaddesk.core.exceptions import AggregationUnavailableError, LeadDeskException
from leaddesk.schemas.leads import (
    CountsRequest,
    LeadCounts,
    LeadPage,
    LeadScrollPage,
    PageRequest,
    ScrollRequest,
    UniqueValues,
)

router = APIRouter(prefix="/leads", tags=["leads"])


@router.post("/counts", response_model=LeadCounts)
def lead_counts(
    payload: CountsRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> LeadCounts:
    caller = authorize_or_raise(authorization, scopes=["leads.counts"])
    try:
        return get_count_service().get_counts(caller, payload.filters, bust_cache=payload.bust_cache)
    except LeadDeskException as exc:
        raise to_http_error(exc) from exc


@router.get("/unique-values", response_model=UniqueValues)
def unique_values(authorization: str | None = Header(default=None, alias="Authorization")) -> UniqueValues:
    caller = authorize_or_raise(authorization, scopes=["leads.read"])
    try:
        return get_unique_values_service().get_unique_values(caller)
    except AggregationUnavailableError as exc:
        return UniqueValues(degraded=True, error=str(exc))
    except LeadDeskException as exc:
        raise to_http_error(exc) from exc


@router.post("/query", response_model=LeadPage)
def query_leads(
    payload: PageRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> LeadPage:
    caller = authorize_or_raise(authorization, scopes=["leads.read"])
    try:
        return get_lead_query_service().query_page(
            caller, payload.filters, page=payload.page, page_size=payload.page_size
        )
    except LeadDeskException as exc:
        raise to_http_error(exc) from exc


@router.post("/scroll", response_model=LeadScrollPage)
def scroll_leads(
    payload: ScrollRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> LeadScrollPage:
    caller = authorize_or_raise(authorization, scopes=["leads.read"])
    try:
        return get_lead_query_service().query_scroll(
            caller, payload.filters, cursor=payload.cursor, page_size=payload.page_size
        )
    except LeadDeskException as exc:
        raise to_http_error(exc) from exc
