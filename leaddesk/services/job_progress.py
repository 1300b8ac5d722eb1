"""Import job progress subscriptions.

A subscription listens on a push channel and polls the job record at a fixed
interval. Whichever source first reports a terminal status wins; that status
is delivered once and both sources are torn down.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from typing import Any, Protocol

from sqlalchemy.orm import sessionmaker

from leaddesk.core.config import get_config
from leaddesk.core.logging import LogContext, build_log_event
from leaddesk.database import db
from leaddesk.models import ImportJob
from leaddesk.schemas.jobs import ImportJobResponse

logger = logging.getLogger(__name__)

JobUpdateHandler = Callable[[ImportJobResponse], None]
JobReader = Callable[[str], "ImportJobResponse | None"]


def job_channel_name(job_id: str) -> str:
    return f"import-job:{job_id}"


class JobEventChannel(Protocol):
    def publish(self, job_id: str, payload: dict[str, Any]) -> None:
        ...

    def listen(self, job_id: str, handler: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        """Start delivering payloads for ``job_id``; return a stop callable."""
        ...


class InMemoryJobEventChannel:
    """Synchronous in-process channel."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[[dict[str, Any]], None]]] = defaultdict(list)
        self._lock = threading.Lock()

    def publish(self, job_id: str, payload: dict[str, Any]) -> None:
        with self._lock:
            handlers = list(self._handlers.get(job_id, ()))
        for handler in handlers:
            handler(payload)

    def listen(self, job_id: str, handler: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        with self._lock:
            self._handlers[job_id].append(handler)

        def stop() -> None:
            with self._lock:
                handlers = self._handlers.get(job_id, [])
                if handler in handlers:
                    handlers.remove(handler)
                if not handlers:
                    self._handlers.pop(job_id, None)

        return stop

    def listener_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._handlers.get(job_id, ()))


class RedisJobEventChannel:
    """Redis pub/sub channel, one channel per job."""

    def __init__(self, client: Any = None, url: str | None = None) -> None:
        if client is None:
            import redis

            client = redis.Redis.from_url(url or get_config().REDIS_URL)
        self.client = client

    def publish(self, job_id: str, payload: dict[str, Any]) -> None:
        self.client.publish(job_channel_name(job_id), json.dumps(payload, default=str))

    def listen(self, job_id: str, handler: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        pubsub = self.client.pubsub(ignore_subscribe_messages=True)

        def on_message(message: dict[str, Any]) -> None:
            data = message.get("data")
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            try:
                payload = json.loads(data)
            except (TypeError, ValueError):
                logger.warning("job.channel.bad_payload", extra={"event": "job.channel.bad_payload", "job_id": job_id})
                return
            handler(payload)

        pubsub.subscribe(**{job_channel_name(job_id): on_message})
        worker = pubsub.run_in_thread(sleep_time=0.1, daemon=True)

        def stop() -> None:
            worker.stop()
            pubsub.close()

        return stop


class JobSubscription:
    def __init__(self, job_id: str, on_update: JobUpdateHandler) -> None:
        self.job_id = job_id
        self._on_update = on_update
        self._lock = threading.RLock()
        self._stopped = threading.Event()
        self._last_processed = -1
        self._stop_listening: Callable[[], None] | None = None
        self.terminal_update: ImportJobResponse | None = None

    @property
    def active(self) -> bool:
        return not self._stopped.is_set()

    def deliver(self, update: ImportJobResponse) -> None:
        with self._lock:
            if self._stopped.is_set():
                return
            if update.processed_rows < self._last_processed:
                return
            self._last_processed = update.processed_rows
            if update.is_terminal:
                self.terminal_update = update
                self._teardown()
            try:
                self._on_update(update)
            except Exception:
                logger.exception(
                    "job.subscription.handler_failed",
                    extra=build_log_event(
                        "job.subscription.handler_failed", LogContext(job_id=self.job_id, operation="import")
                    ),
                )

    def attach_listener(self, stop: Callable[[], None]) -> None:
        with self._lock:
            if self._stopped.is_set():
                stop()
            else:
                self._stop_listening = stop

    def wait(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds; return True once unsubscribed."""
        return self._stopped.wait(timeout)

    def unsubscribe(self) -> None:
        with self._lock:
            self._teardown()

    def _teardown(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        if self._stop_listening is not None:
            self._stop_listening()
            self._stop_listening = None


class JobProgressReporter:
    def __init__(
        self,
        channel: JobEventChannel,
        job_reader: JobReader | None = None,
        session_factory: sessionmaker | None = None,
        poll_interval_seconds: float | None = None,
    ) -> None:
        self.channel = channel
        self._session_factory = session_factory
        self._job_reader = job_reader or self._read_job
        self.poll_interval_seconds = (
            poll_interval_seconds if poll_interval_seconds is not None else get_config().JOB_POLL_INTERVAL_SECONDS
        )

    def _read_job(self, job_id: str) -> ImportJobResponse | None:
        factory = self._session_factory or db.get_session_factory()
        with factory() as session:
            job = session.get(ImportJob, job_id)
            return ImportJobResponse.model_validate(job) if job is not None else None

    def subscribe(self, job_id: str, on_update: JobUpdateHandler) -> JobSubscription:
        subscription = JobSubscription(job_id, on_update)

        def on_payload(payload: dict[str, Any]) -> None:
            subscription.deliver(ImportJobResponse.model_validate(payload))

        subscription.attach_listener(self.channel.listen(job_id, on_payload))
        poller = threading.Thread(
            target=self._poll,
            args=(subscription,),
            name=f"job-poll-{job_id}",
            daemon=True,
        )
        poller.start()
        return subscription

    def _poll(self, subscription: JobSubscription) -> None:
        while subscription.active:
            try:
                update = self._job_reader(subscription.job_id)
            except Exception as exc:
                logger.warning(
                    "job.poll.failed",
                    extra=build_log_event(
                        "job.poll.failed", LogContext(job_id=subscription.job_id, operation="import"), error=str(exc)
                    ),
                )
                update = None
            if update is not None:
                subscription.deliver(update)
            if subscription.wait(self.poll_interval_seconds):
                break
