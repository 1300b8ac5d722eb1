"""Dependency providers for API handlers and background workers."""

from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache

from sqlalchemy.orm import Session

from leaddesk.auth.jwt import caller_from_token
from leaddesk.auth.scope import CallerIdentity
from leaddesk.core.config import Config, get_config
from leaddesk.database.db import get_db
from leaddesk.services.bulk_mutation_service import BulkMutationService
from leaddesk.services.count_service import CountService
from leaddesk.services.import_job_service import ImportJobService
from leaddesk.services.job_progress import JobEventChannel, JobProgressReporter, RedisJobEventChannel
from leaddesk.services.lead_query_service import LeadQueryService
from leaddesk.services.unique_values_service import UniqueValuesService


def get_settings() -> Config:
    """Return validated application configuration."""
    return get_config()


def get_db_session() -> Generator[Session, None, None]:
    """Yield SQLAlchemy session for dependency injection."""
    yield from get_db()


def get_current_caller(token: str, settings: Config | None = None) -> CallerIdentity:
    """Resolve the caller identity from a bearer access token."""
    return caller_from_token(token, "access", settings or get_settings())


# Services are process-wide so their read caches are shared across requests.


@lru_cache(maxsize=1)
def get_job_channel() -> JobEventChannel:
    return RedisJobEventChannel(url=get_settings().REDIS_URL)


@lru_cache(maxsize=1)
def get_count_service() -> CountService:
    return CountService()


@lru_cache(maxsize=1)
def get_unique_values_service() -> UniqueValuesService:
    return UniqueValuesService()


@lru_cache(maxsize=1)
def get_lead_query_service() -> LeadQueryService:
    return LeadQueryService()


@lru_cache(maxsize=1)
def get_bulk_mutation_service() -> BulkMutationService:
    return BulkMutationService()


@lru_cache(maxsize=1)
def get_import_job_service() -> ImportJobService:
    return ImportJobService(channel=get_job_channel())


@lru_cache(maxsize=1)
def get_job_progress_reporter() -> JobProgressReporter:
    return JobProgressReporter(channel=get_job_channel())
