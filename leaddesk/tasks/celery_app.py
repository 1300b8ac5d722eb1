"""Celery application bootstrap."""

from __future__ import annotations

import os

from celery import Celery

from leaddesk.core.config import get_config

_config = get_config()

celery_app = Celery(
    "leaddesk",
    broker=_config.CELERY_BROKER_URL,
    backend=_config.CELERY_RESULT_BACKEND,
    include=["leaddesk.tasks.import_tasks"],
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
)

# Local/dev convenience: run tasks synchronously when requested.
if os.getenv("CELERY_TASK_ALWAYS_EAGER", "false").lower() in {"1", "true", "yes", "on"}:
    celery_app.conf.task_always_eager = True
    celery_app.conf.task_eager_propagates = True
