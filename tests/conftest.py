from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from leaddesk.auth.scope import CallerIdentity
from leaddesk.core.config import get_config
from leaddesk.models import Base, CustomField, Lead, LeadBucket, User, UserRole
from leaddesk.services.cache import CacheRegistry

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'leaddesk_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture
def settings():
    return replace(get_config(), READ_RETRY_BACKOFF_SECONDS=0.0)


@pytest.fixture
def caches():
    return CacheRegistry()


@dataclass
class Seeder:
    factory: sessionmaker
    _lead_serial: int = 0

    def user(self, role: UserRole = UserRole.SALES_REP, email: str | None = None, is_active: bool = True) -> CallerIdentity:
        with self.factory() as session:
            user = User(
                email=email or f"{role.value}-{self._next()}@example.com",
                name=f"{role.value.title()} User",
                role=role,
                is_active=is_active,
            )
            session.add(user)
            session.commit()
            return CallerIdentity(user_id=user.id, role=role, email=user.email)

    def leads(self, count: int, assigned_to: str | None = None, **fields: Any) -> list[str]:
        """Insert ``count`` leads, newest first in the returned order."""
        ids: list[str] = []
        with self.factory() as session:
            for _ in range(count):
                serial = self._next()
                row = {
                    "name": f"Lead {serial}",
                    "phone": f"555{serial:07d}",
                    "school": "North High",
                    "district": "Central",
                    "gender": "F",
                    "stream": "Science",
                    "custom_fields": {},
                }
                row.update(fields)
                lead = Lead(assigned_to=assigned_to, created_at=BASE_TIME + timedelta(seconds=serial), **row)
                session.add(lead)
                session.flush()
                ids.append(lead.id)
            session.commit()
        return list(reversed(ids))

    def bucket(self, name: str, fields: list[tuple[str, str]]) -> str:
        with self.factory() as session:
            bucket = LeadBucket(name=name)
            bucket.fields = [
                CustomField(name=field_name, label=label, display_order=index)
                for index, (field_name, label) in enumerate(fields)
            ]
            session.add(bucket)
            session.commit()
            return bucket.id

    def _next(self) -> int:
        self._lead_serial += 1
        return self._lead_serial


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


class ManualTimer:
    def __init__(self, delay: float, callback) -> None:
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback()


class ManualTimerFactory:
    """Collects timers so tests decide when the debounce window elapses."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, delay: float, callback) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[ManualTimer]:
        return [timer for timer in self.timers if timer.started and not timer.cancelled]

    def fire_pending(self) -> None:
        for timer in self.live:
            timer.fire()


@pytest.fixture
def timers():
    return ManualTimerFactory()
