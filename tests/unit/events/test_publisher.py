"""Tests for queuing side effects in the outbox."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from lawnly.events.publisher import SideEffectPublisher, _json_safe
from lawnly.events.side_effects import AdminAlert, UserNotification, content_key
from lawnly.models import EventOutboxStatus
from lawnly.repositories.event_outbox_repository import EventOutboxRepository


def _publisher(db) -> SideEffectPublisher:
    return SideEffectPublisher(EventOutboxRepository(db))


@pytest.mark.unit
class TestSideEffectPublisher:
    def test_rows_are_pending_and_keyed(self, db, customer, outbox) -> None:
        note = UserNotification(user_id=customer.id, title="Booking Confirmed!", message="See you")

        _publisher(db).publish(note, scope="accept_job:b1")
        db.commit()

        rows = outbox()
        assert len(rows) == 1
        assert rows[0].event_type == "UserNotification"
        assert rows[0].aggregate_id == customer.id
        assert rows[0].status == EventOutboxStatus.PENDING.value
        assert rows[0].attempt_count == 0
        assert rows[0].idempotency_key == content_key(note, "accept_job:b1")

    def test_same_effect_and_scope_queued_once(self, db, customer, outbox) -> None:
        note = UserNotification(user_id=customer.id, title="Payment Released!", message="Paid")
        publisher = _publisher(db)

        publisher.publish_all([note, note], scope="release:b1")
        publisher.publish(note, scope="release:b1")
        publisher.publish(note, scope="release:b2")
        db.commit()

        assert len(outbox()) == 2

    def test_rollback_discards_rows(self, db, customer, outbox) -> None:
        _publisher(db).publish(
            UserNotification(user_id=customer.id, title="Never sent", message="x"), scope="s"
        )
        db.rollback()
        assert outbox() == []

    def test_admin_alert_aggregate(self, db, outbox) -> None:
        _publisher(db).publish(
            AdminAlert(title="Payout Failed", message="x", booking_id="b1"), scope="s"
        )
        _publisher(db).publish(AdminAlert(title="Digest", message="y"), scope="s")
        db.commit()
        assert sorted(row.aggregate_id for row in outbox("AdminAlert")) == ["admin", "b1"]


@pytest.mark.unit
def test_payload_made_json_safe() -> None:
    payload = _json_safe(
        {
            "amount": Decimal("34.50"),
            "at": datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
            "details": {"refund": Decimal("12.00")},
            "title": "ok",
        }
    )
    assert payload == {
        "amount": 34.5,
        "at": "2026-03-02T09:00:00+00:00",
        "details": {"refund": 12.0},
        "title": "ok",
    }
