"""Outbox dispatch and delivery tasks, driven against the test database."""

from __future__ import annotations

from unittest.mock import patch

from pydantic import SecretStr
import pytest

from lawnly.core.config import settings
from lawnly.events.handlers import DeliveryTemporaryError
from lawnly.models import EventOutbox, EventOutboxStatus, Notification
from lawnly.repositories.event_outbox_repository import EventOutboxRepository
from lawnly.tasks import outbox_tasks
from lawnly.tasks.outbox_tasks import (
    MAX_DELIVERY_ATTEMPTS,
    _next_backoff,
    deliver_event,
    dispatch_pending,
)

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def task_sessions(monkeypatch, session_factory):
    monkeypatch.setattr(outbox_tasks, "SessionLocal", session_factory)


def _enqueue(db, customer, key: str, *, send_email: bool = False, **overrides) -> EventOutbox:
    payload = {
        "user_id": customer.id,
        "title": "Booking Confirmed!",
        "message": "Green Blades has accepted your job.",
        "severity": "success",
        "send_email": send_email,
    }
    event = EventOutboxRepository(db).enqueue(
        event_type=overrides.pop("event_type", "UserNotification"),
        aggregate_id=customer.id,
        payload=payload,
        idempotency_key=key,
    )
    for field, value in overrides.items():
        setattr(event, field, value)
    db.commit()
    return event


def _reload(db, event_id: str) -> EventOutbox:
    db.expire_all()
    refreshed = db.get(EventOutbox, event_id)
    assert refreshed is not None
    return refreshed


def test_dispatch_pending_enqueues_events(db, customer):
    first = _enqueue(db, customer, "accept_job:b1:customer")
    second = _enqueue(db, customer, "accept_job:b2:customer")
    _enqueue(db, customer, "accept_job:b3:customer", status=EventOutboxStatus.SENT.value)

    with patch("lawnly.tasks.outbox_tasks.deliver_event") as mocked_task:
        scheduled = dispatch_pending()

    assert scheduled == 2
    calls = mocked_task.apply_async.call_args_list
    assert {call.args[0][0] for call in calls} == {first.id, second.id}
    assert all(call.kwargs["queue"] == "notifications" for call in calls)


def test_deliver_event_missing_returns_none():
    assert deliver_event.run("01HZZZZZZZZZZZZZZZZZZZZZZZ") is None


def test_deliver_event_success_marks_sent(db, customer):
    event = _enqueue(db, customer, "accept_job:b4:customer")

    assert deliver_event.run(event.id) == event.id

    refreshed = _reload(db, event.id)
    assert refreshed.status == EventOutboxStatus.SENT.value
    assert refreshed.attempt_count == 1
    assert db.query(Notification).filter_by(user_id=customer.id).count() == 1


def test_already_sent_event_skipped(db, customer):
    event = _enqueue(db, customer, "accept_job:b5:customer", status=EventOutboxStatus.SENT.value)
    assert deliver_event.run(event.id) is None
    assert db.query(Notification).count() == 0


def test_unhandled_event_type_not_retried(db, customer):
    event = _enqueue(db, customer, "legacy:b6", event_type="SmsMessage")

    deliver_event.run(event.id)

    assert _reload(db, event.id).status == EventOutboxStatus.SENT.value


def test_deliver_event_temporary_error_retries(db, customer, monkeypatch):
    monkeypatch.setattr(settings, "email_enabled", True)
    monkeypatch.setattr(settings, "resend_api_key", SecretStr("re_test_key"))
    event = _enqueue(db, customer, "accept_job:b7:customer", send_email=True)

    with patch("resend.Emails.send", side_effect=Exception("rate limited")):
        with pytest.raises(DeliveryTemporaryError):
            deliver_event.run(event.id)

    refreshed = _reload(db, event.id)
    assert refreshed.status == EventOutboxStatus.PENDING.value
    assert refreshed.attempt_count == 1
    assert "rate limited" in refreshed.last_error
    # The in-app row written before the email failed is rolled back with the attempt
    assert db.query(Notification).count() == 0


def test_deliver_event_gives_up_after_max_attempts(db, customer, monkeypatch):
    monkeypatch.setattr(settings, "email_enabled", True)
    monkeypatch.setattr(settings, "resend_api_key", SecretStr("re_test_key"))
    event = _enqueue(
        db,
        customer,
        "accept_job:b8:customer",
        send_email=True,
        attempt_count=MAX_DELIVERY_ATTEMPTS - 1,
    )

    with patch("resend.Emails.send", side_effect=Exception("mailbox unavailable")):
        with pytest.raises(DeliveryTemporaryError):
            deliver_event.run(event.id)

    refreshed = _reload(db, event.id)
    assert refreshed.status == EventOutboxStatus.FAILED.value
    assert refreshed.attempt_count == MAX_DELIVERY_ATTEMPTS

    with patch("resend.Emails.send") as send:
        assert deliver_event.run(event.id) is None
    send.assert_not_called()


@pytest.mark.parametrize("attempt, delay", [(1, 30), (2, 120), (5, 7200), (9, 7200)])
def test_backoff_schedule(attempt, delay):
    assert _next_backoff(attempt) == delay
