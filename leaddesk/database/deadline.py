"""Statement deadlines enforced by the database itself.

A deadline aborts the running statement inside the database, so a slow query
releases its connection instead of running on after the caller gave up.
PostgreSQL uses ``SET LOCAL statement_timeout`` for the current transaction;
SQLite installs a progress handler that interrupts the statement once the
deadline passes.
"""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

# SQLite VM instructions between deadline checks.
SQLITE_PROGRESS_STEPS = 1000

POSTGRES_QUERY_CANCELED = "57014"


@contextmanager
def statement_deadline(session: Session, seconds: float) -> Iterator[None]:
    """Abort statements run on ``session`` once ``seconds`` have elapsed."""
    connection = session.connection()
    dialect = connection.dialect.name
    if dialect == "postgresql":
        # SET does not accept bound parameters.
        connection.exec_driver_sql(f"SET LOCAL statement_timeout = {max(1, int(seconds * 1000))}")
        yield
    elif dialect == "sqlite":
        raw = connection.connection.driver_connection
        expires_at = time.monotonic() + seconds
        raw.set_progress_handler(lambda: int(time.monotonic() >= expires_at), SQLITE_PROGRESS_STEPS)
        try:
            yield
        finally:
            raw.set_progress_handler(None, 0)
    else:
        yield


def is_deadline_error(exc: DBAPIError) -> bool:
    """True when the driver reports a statement aborted by :func:`statement_deadline`."""
    orig = exc.orig
    if getattr(orig, "pgcode", None) == POSTGRES_QUERY_CANCELED:
        return True
    if getattr(orig, "sqlstate", None) == POSTGRES_QUERY_CANCELED:
        return True
    return isinstance(orig, sqlite3.OperationalError) and "interrupted" in str(orig).lower()
