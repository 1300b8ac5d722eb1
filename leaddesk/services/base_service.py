"""Shared service base with robust session lifecycle behavior."""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session, sessionmaker

from leaddesk.core.config import Config, get_config
from leaddesk.database import db
from leaddesk.repositories.lead_store import LeadStore
from leaddesk.services.cache import CacheRegistry, read_caches


class BaseService:
    """Base class for services that open one session per operation.

    Services hold a session factory rather than a session so each operation
    reads fresh rows, and so work pushed to a worker thread gets its own
    session.
    """

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        settings: Config | None = None,
        caches: CacheRegistry | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.settings = settings or get_config()
        self.caches = caches or read_caches

    @property
    def session_factory(self) -> sessionmaker:
        return self._session_factory or db.get_session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Yield a session, committing on success and rolling back on failure."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def store_scope(self) -> Generator[LeadStore, None, None]:
        with self.session_scope() as session:
            yield LeadStore(session)
