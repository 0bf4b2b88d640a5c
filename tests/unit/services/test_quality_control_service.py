"""Tests for the scheduled quality control loop and admin standing overrides."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from lawnly.core.config import settings
from lawnly.core.exceptions import ForbiddenException, ValidationException
from lawnly.domain.bounded_log import QualityLogEntry
from lawnly.models import BookingStatus, SuspensionStatus
from lawnly.services.quality_control_service import QualityControlService

FROZEN_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def rated_jobs(make_booking):
    """Completed jobs for ``contractor`` carrying the given ratings."""

    def _make(contractor, ratings, days_ago: int = 20):
        return [
            make_booking(
                BookingStatus.COMPLETED,
                contractor=contractor,
                customer_rating=rating,
                rating_submitted_at=FROZEN_NOW - timedelta(days=days_ago),
                completed_at=FROZEN_NOW - timedelta(days=days_ago),
            )
            for rating in ratings
        ]

    return _make


@pytest.fixture
def cancellations(make_booking):
    def _make(contractor, count: int, days_ago: int = 2):
        return [
            make_booking(
                BookingStatus.CANCELLED,
                contractor=contractor,
                cancelled_at=FROZEN_NOW - timedelta(days=days_ago),
            )
            for _ in range(count)
        ]

    return _make


def _run(db):
    return QualityControlService(db).run(now=FROZEN_NOW)


@pytest.mark.unit
class TestQualityLoop:
    def test_low_rating_suspends_and_alerts_admins(
        self, db, contractor, rated_jobs, outbox_titles
    ) -> None:
        rated_jobs(contractor, [2, 3, 3, 2])

        result = _run(db)

        db.refresh(contractor)
        assert (result.processed, result.succeeded, result.failed) == (1, 1, 0)
        assert contractor.suspension_status == SuspensionStatus.SUSPENDED.value
        assert contractor.is_active is False
        assert contractor.suspended_at is not None
        assert contractor.suspension_reason == "Average rating 2.50 below 3.0"
        assert contractor.quality_reviews[-1]["type"] == "suspended"
        assert contractor.quality_warnings == []
        assert outbox_titles("UserNotification") == ["🚫 Account Suspended"]
        assert outbox_titles("AdminAlert") == ["🔍 1 Quality Alert(s) Require Attention"]
        assert "Auto-Suspended" in result.side_effects[0].message

    def test_cancellations_earn_a_warning_only(
        self, db, contractor, cancellations, outbox_titles
    ) -> None:
        cancellations(contractor, 2)

        result = _run(db)

        db.refresh(contractor)
        assert contractor.suspension_status == SuspensionStatus.WARNING.value
        assert contractor.is_active is True
        assert contractor.cancelled_jobs_count == 2
        assert [w["reason"] for w in contractor.quality_warnings] == [
            "2 cancellations in 7 days"
        ]
        assert outbox_titles("UserNotification") == ["⚠️ Quality Alert"]
        assert outbox_titles("AdminAlert") == []
        assert result.side_effects == []

    def test_recent_one_star_requires_review(
        self, db, contractor, rated_jobs, outbox_titles
    ) -> None:
        rated_jobs(contractor, [5, 5, 5, 5, 5])
        rated_jobs(contractor, [1], days_ago=2)

        _run(db)

        db.refresh(contractor)
        assert contractor.suspension_status == SuspensionStatus.REVIEW_REQUIRED.value
        assert contractor.is_active is True
        assert contractor.quality_reviews[-1]["reason"] == "Received 1-star rating in last 7 days"
        assert outbox_titles("UserNotification") == ["🔍 Account Under Review"]
        assert outbox_titles("AdminAlert") == ["🔍 1 Quality Alert(s) Require Attention"]

    def test_metrics_refreshed(self, db, contractor, rated_jobs) -> None:
        rated_jobs(contractor, [5, 4])

        _run(db)

        db.refresh(contractor)
        assert contractor.completed_jobs_count == 2
        assert contractor.average_rating == Decimal("4.50")
        assert contractor.suspension_status == SuspensionStatus.ACTIVE.value

    def test_recovery_restores_good_standing(
        self, db, make_contractor, outbox_titles
    ) -> None:
        recovered = make_contractor(suspension_status=SuspensionStatus.WARNING.value)

        _run(db)

        db.refresh(recovered)
        assert recovered.suspension_status == SuspensionStatus.ACTIVE.value
        assert outbox_titles("UserNotification") == ["✅ Account In Good Standing"]

    def test_unchanged_standing_logged_without_notification(
        self, db, make_contractor, cancellations, outbox_titles
    ) -> None:
        warned = make_contractor(suspension_status=SuspensionStatus.WARNING.value)
        cancellations(warned, 2)

        _run(db)

        db.refresh(warned)
        assert len(warned.quality_warnings) == 1
        assert outbox_titles("UserNotification") == []

    def test_history_keeps_newest_entries(
        self, db, monkeypatch, make_contractor, cancellations
    ) -> None:
        monkeypatch.setattr(settings, "quality_history_limit", 2)
        old = [
            QualityLogEntry.create("warning", f"old {i}", FROZEN_NOW - timedelta(days=30 - i))
            .to_dict()
            for i in range(2)
        ]
        warned = make_contractor(quality_warnings=old)
        cancellations(warned, 2)

        _run(db)

        db.refresh(warned)
        assert [w["reason"] for w in warned.quality_warnings] == [
            "old 1",
            "2 cancellations in 7 days",
        ]

    def test_suspended_contractors_not_rechecked(self, db, make_contractor) -> None:
        make_contractor(is_active=False, suspension_status=SuspensionStatus.SUSPENDED.value)
        assert _run(db).processed == 0

    def test_one_failure_does_not_stop_the_batch(
        self, db, monkeypatch, make_contractor, cancellations
    ) -> None:
        first = make_contractor()
        second = make_contractor()
        cancellations(second, 2)
        service = QualityControlService(db)
        original = service.collect_metrics

        def _flaky(contractor, now):
            if contractor.id == first.id:
                raise RuntimeError("metrics unavailable")
            return original(contractor, now)

        monkeypatch.setattr(service, "collect_metrics", _flaky)
        result = service.run(now=FROZEN_NOW)

        db.refresh(second)
        assert (result.processed, result.succeeded, result.failed) == (2, 1, 1)
        assert result.failures[0]["id"] == first.id
        assert second.suspension_status == SuspensionStatus.WARNING.value


@pytest.mark.unit
class TestOverrideStanding:
    def test_admin_suspends(
        self, db, contractor, admin_principal, outbox_titles
    ) -> None:
        result = QualityControlService(db).override_standing(
            admin_principal, contractor.id, "suspended", "Repeated no-shows", now=FROZEN_NOW
        )

        db.refresh(contractor)
        assert result.data == {"contractor_id": contractor.id, "suspension_status": "suspended"}
        assert contractor.is_active is False
        assert contractor.suspension_reason == "Repeated no-shows"
        assert contractor.quality_reviews[-1]["reason"] == "Admin override: Repeated no-shows"
        assert outbox_titles("UserNotification") == ["Account Standing Updated"]

    def test_admin_reinstates(self, db, make_contractor, admin_principal) -> None:
        suspended = make_contractor(
            is_active=False,
            suspension_status=SuspensionStatus.SUSPENDED.value,
            suspension_reason="Insurance expired",
            suspended_at=FROZEN_NOW,
        )

        QualityControlService(db).override_standing(
            admin_principal, suspended.id, "active", "Certificate renewed", now=FROZEN_NOW
        )

        db.refresh(suspended)
        assert suspended.is_active is True
        assert suspended.can_work
        assert suspended.suspension_reason is None

    @pytest.mark.parametrize(
        "status, reason, code",
        [("banished", "x", "INVALID_STANDING"), ("warning", "   ", "REASON_REQUIRED")],
    )
    def test_validation(self, db, contractor, admin_principal, status, reason, code) -> None:
        with pytest.raises(ValidationException) as exc:
            QualityControlService(db).override_standing(
                admin_principal, contractor.id, status, reason
            )
        assert exc.value.code == code

    def test_admin_only(self, db, contractor, contractor_principal) -> None:
        with pytest.raises(ForbiddenException):
            QualityControlService(db).override_standing(
                contractor_principal, contractor.id, "active", "Looks fine to me"
            )
