# lawnly/tasks/outbox_tasks.py
"""
Celery tasks for delivering side effects from the event outbox.

Implements a two-step workflow:
1. `outbox.dispatch_pending` periodically enqueues delivery tasks.
2. `outbox.deliver_event` performs delivery with retries and backoff.

Delivery failures never reach the workflow that produced the event.
"""

from __future__ import annotations

from contextlib import contextmanager
from time import monotonic
from typing import Any, Iterator, Optional, cast

from celery.app.task import Task  # noqa: F401 - used for type hints
from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from lawnly.database import SessionLocal
from lawnly.events.handlers import DeliveryTemporaryError, process_event
from lawnly.models.event_outbox import EventOutboxStatus
from lawnly.monitoring.prometheus_metrics import prometheus_metrics
from lawnly.repositories.event_outbox_repository import EventOutboxRepository
from lawnly.tasks.celery_app import celery_app

logger = get_task_logger(__name__)

MAX_DELIVERY_ATTEMPTS = 5
BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]


def _next_backoff(attempt_number: int) -> int:
    """Return backoff delay for the given attempt (1-indexed)."""
    index = max(0, min(attempt_number - 1, len(BACKOFF_SECONDS) - 1))
    return BACKOFF_SECONDS[index]


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Provide transactional scope for use in tasks."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@celery_app.task(name="outbox.dispatch_pending", max_retries=0, queue="notifications")
def dispatch_pending() -> int:
    """
    Fetch pending outbox events and enqueue delivery tasks.

    Returns the number of events scheduled.
    """
    with _session_scope() as session:
        repo = EventOutboxRepository(session)
        pending = repo.fetch_pending(limit=200)
        for event in pending:
            deliver_event.apply_async((event.id,), queue="notifications")
        scheduled: int = len(pending)
        if scheduled:
            logger.info("Scheduled %s outbox events for delivery", scheduled)
        return scheduled


def _record_failure(
    session: Session,
    repo: EventOutboxRepository,
    event_id: str,
    event_type: str,
    attempt_number: int,
    exc: Exception,
) -> tuple[int, bool]:
    # Discard partial handler writes before recording the attempt
    session.rollback()
    backoff = _next_backoff(attempt_number)
    terminal = attempt_number >= MAX_DELIVERY_ATTEMPTS
    repo.mark_failed(
        event_id,
        attempt_count=attempt_number,
        backoff_seconds=backoff,
        error=str(exc),
        terminal=terminal,
    )
    session.commit()
    if terminal:
        prometheus_metrics.record_notification_outcome(event_type, "failed")
    return backoff, terminal


@celery_app.task(
    name="outbox.deliver_event",
    bind=True,
    max_retries=MAX_DELIVERY_ATTEMPTS,
    default_retry_delay=30,
    queue="notifications",
)
def deliver_event(self: "Task[Any, Any]", event_id: str) -> Optional[str]:
    """Deliver a single outbox event."""
    session = SessionLocal()
    start: Optional[float] = None

    try:
        repo = EventOutboxRepository(session)
        event = repo.get_by_id(event_id)
        if event is None:
            logger.warning("Outbox event %s missing; skipping", event_id)
            return None
        if event.status != EventOutboxStatus.PENDING:
            logger.info("Outbox event %s already %s; skipping", event_id, event.status)
            return None

        event_type = cast(str, event.event_type)
        attempt_number = event.attempt_count + 1

        try:
            start = monotonic()
            handled = process_event(event_type, dict(event.payload or {}), session)
            prometheus_metrics.observe_notification_dispatch(event_type, monotonic() - start)
            repo.mark_sent(event_id, attempt_number)
            session.commit()
            prometheus_metrics.record_notification_outcome(
                event_type, "sent" if handled else "unhandled"
            )
            logger.info(
                "Delivered outbox event %s type=%s attempts=%s",
                event_id,
                event_type,
                attempt_number,
            )
            return event_id
        except DeliveryTemporaryError as exc:
            if start is not None:
                prometheus_metrics.observe_notification_dispatch(event_type, monotonic() - start)
            backoff, terminal = _record_failure(
                session, repo, event_id, event_type, attempt_number, exc
            )
            if terminal:
                logger.error("Outbox event %s failed after %s attempts", event_id, attempt_number)
                raise
            logger.warning(
                "Retrying outbox event %s attempt=%s backoff=%ss",
                event_id,
                attempt_number,
                backoff,
            )
            raise self.retry(countdown=backoff, exc=exc)
        except Exception as exc:
            if start is not None:
                prometheus_metrics.observe_notification_dispatch(event_type, monotonic() - start)
            backoff, terminal = _record_failure(
                session, repo, event_id, event_type, attempt_number, exc
            )
            if terminal:
                logger.exception(
                    "Outbox event %s failed permanently after %s attempts",
                    event_id,
                    attempt_number,
                )
                raise
            logger.exception("Error delivering outbox event %s; retrying in %ss", event_id, backoff)
            raise self.retry(countdown=backoff, exc=exc)
    finally:
        session.close()
