"""Checks run before the API or a worker starts taking lead traffic.

``Config`` already rejects values that are invalid on their own. This module
looks at the combinations: settings that each pass validation but together
make a read or bulk path misbehave, plus database reachability.
"""

from __future__ import annotations

import logging

from leaddesk.core.config import Config, get_config
from leaddesk.core.logging_config import configure_logging
from leaddesk.database.db import get_active_database_url, verify_database_connection

logger = logging.getLogger(__name__)


def lead_settings_warnings(config: Config) -> list[str]:
    """Describe setting combinations that would quietly degrade lead handling."""
    warnings: list[str] = []
    if config.server_side_delete_threshold >= config.BULK_MAX_IDS:
        warnings.append(
            "Server-side delete threshold is not below BULK_MAX_IDS; large explicit deletes are rejected "
            "before they can be delegated."
        )
    if config.BULK_ID_FETCH_PAGE_SIZE > config.BULK_MAX_IDS:
        warnings.append("BULK_ID_FETCH_PAGE_SIZE exceeds BULK_MAX_IDS; id resolution never pages.")
    worst_case_backoff = config.READ_RETRY_BACKOFF_SECONDS * (2**config.READ_MAX_RETRIES - 1)
    if config.READ_MAX_RETRIES and worst_case_backoff >= config.QUERY_TIMEOUT_SECONDS:
        warnings.append("Read retry backoff can outlast QUERY_TIMEOUT_SECONDS; retried list queries will time out.")
    if config.COUNT_CACHE_TTL_SECONDS > config.LIST_CACHE_TTL_SECONDS:
        warnings.append("Counts are cached longer than lead pages; totals can disagree with the rows shown.")
    return warnings


def _check_database(config: Config) -> str:
    database_url = get_active_database_url()
    if not verify_database_connection():
        if config.DB_CONNECTIVITY_REQUIRED:
            raise RuntimeError("Database connectivity check failed.")
        logger.warning(
            "startup.database.connectivity_optional_failed",
            extra={"event": "startup.database.connectivity_optional_failed"},
        )
    scheme = database_url.split("://", 1)[0]
    if config.is_production and scheme.startswith("sqlite"):
        logger.warning(
            "startup.production.sqlite_detected",
            extra={"event": "startup.production.sqlite_detected"},
        )
    return scheme


def validate_startup_config() -> None:
    """Fail fast on an unreachable required database; warn on risky lead settings."""
    config = get_config()
    scheme = _check_database(config)
    for warning in lead_settings_warnings(config):
        logger.warning("startup.settings.inconsistent", extra={"event": "startup.settings.inconsistent", "detail": warning})
    logger.info(
        "startup.config.validated",
        extra={
            "event": "startup.config.validated",
            "env": config.ENV,
            "database_url_scheme": scheme,
            "query_timeout_seconds": config.QUERY_TIMEOUT_SECONDS,
            "bulk_max_ids": config.BULK_MAX_IDS,
            "server_side_delete_threshold": config.server_side_delete_threshold,
        },
    )


def bootstrap() -> None:
    """Initialize logging and validate runtime configuration."""
    configure_logging()
    validate_startup_config()
