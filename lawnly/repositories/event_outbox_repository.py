# lawnly/repositories/event_outbox_repository.py
"""
Outbox rows for side effects that leave the database.

Rows are written in the same transaction as the booking change that
produced them; the delivery task reads them back after commit.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session
import ulid

from ..core.timezone_utils import utcnow
from ..database.session_utils import get_dialect_name
from ..models.event_outbox import EventOutbox, EventOutboxStatus
from .base_repository import BaseRepository

MAX_ERROR_LENGTH = 1000


class EventOutboxRepository(BaseRepository[EventOutbox]):
    def __init__(self, db: Session):
        super().__init__(db, EventOutbox)
        self._dialect = get_dialect_name(db).lower()

    def _insert_ignoring_duplicates(self, values: Dict[str, Any]) -> Any:
        if self._dialect == "postgresql":
            return (
                pg_insert(EventOutbox)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["idempotency_key"])
            )
        if self._dialect == "sqlite":
            return insert(EventOutbox).values(**values).prefix_with("OR IGNORE")
        return insert(EventOutbox).values(**values)

    def enqueue(
        self,
        event_type: str,
        aggregate_id: str,
        payload: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        next_attempt_at: Optional[datetime] = None,
    ) -> EventOutbox:
        """
        Queue an event once per idempotency key.

        A second enqueue with the same key is a no-op and returns the row
        already queued, whatever its status.
        """
        due = next_attempt_at or utcnow()
        key = idempotency_key or f"{event_type}:{aggregate_id}:{int(due.timestamp())}"
        stmt = self._insert_ignoring_duplicates(
            {
                "id": str(ulid.ULID()),
                "event_type": event_type,
                "aggregate_id": aggregate_id,
                "payload": payload or {},
                "idempotency_key": key,
                "status": EventOutboxStatus.PENDING.value,
                "attempt_count": 0,
                "next_attempt_at": due,
            }
        )
        inserted = self._run(f"queueing {event_type}", lambda: self.db.execute(stmt)).rowcount
        if not inserted:
            self.logger.debug("Outbox key %s already queued", key)
        self.flush()

        row = self.find_one_by(idempotency_key=key)
        if row is None:
            raise RuntimeError(f"Outbox row {key} missing after enqueue")
        return row

    def fetch_pending(self, limit: int = 200) -> List[EventOutbox]:
        """Due pending rows, oldest first. Rows locked by another worker are skipped."""
        stmt = (
            select(EventOutbox)
            .where(
                EventOutbox.status == EventOutboxStatus.PENDING.value,
                EventOutbox.next_attempt_at <= utcnow(),
            )
            .order_by(EventOutbox.next_attempt_at, EventOutbox.id)
            .limit(limit)
        )
        if self._dialect == "postgresql":
            stmt = stmt.with_for_update(skip_locked=True)
        return self._run("fetching due events", lambda: list(self.db.scalars(stmt)))

    def _record_attempt(self, event_id: str, **values: Any) -> None:
        values.setdefault("updated_at", utcnow())
        stmt = update(EventOutbox).where(EventOutbox.id == event_id).values(**values)
        self._run(f"recording attempt on {event_id}", lambda: self.db.execute(stmt))
        self.flush()

    def mark_sent(self, event_id: str, attempt_count: int) -> None:
        now = utcnow()
        self._record_attempt(
            event_id,
            status=EventOutboxStatus.SENT.value,
            attempt_count=attempt_count,
            last_error=None,
            next_attempt_at=now,
            updated_at=now,
        )

    def mark_failed(
        self,
        event_id: str,
        *,
        attempt_count: int,
        backoff_seconds: int,
        error: str | None = None,
        terminal: bool = False,
    ) -> None:
        """Record a failed attempt. A terminal failure is never retried."""
        now = utcnow()
        retry_at = now if terminal else now + timedelta(seconds=max(backoff_seconds, 1))
        self._record_attempt(
            event_id,
            status=(EventOutboxStatus.FAILED if terminal else EventOutboxStatus.PENDING).value,
            attempt_count=attempt_count,
            last_error=error[:MAX_ERROR_LENGTH] if error else None,
            next_attempt_at=retry_at,
            updated_at=now,
        )
