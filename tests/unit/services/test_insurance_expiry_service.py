"""Tests for the daily insurance expiry check."""

from datetime import datetime, timedelta, timezone

import pytest

from lawnly.models import SuspensionStatus
from lawnly.services.insurance_expiry_service import InsuranceExpiryService

FROZEN_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
TODAY = FROZEN_NOW.date()


def _insured(make_contractor, days: int, **overrides):
    return make_contractor(
        insurance_expiry_date=TODAY + timedelta(days=days), insurance_verified=True, **overrides
    )


def _run(db):
    return InsuranceExpiryService(db).run(now=FROZEN_NOW)


@pytest.mark.unit
class TestInsuranceExpiry:
    @pytest.mark.parametrize("days", [-3, 0])
    def test_expired_insurance_suspends(
        self, db, make_contractor, outbox_titles, days
    ) -> None:
        lapsed = _insured(make_contractor, days)

        result = _run(db)

        db.refresh(lapsed)
        assert result.succeeded == 1
        assert lapsed.is_active is False
        assert lapsed.suspension_status == SuspensionStatus.SUSPENDED.value
        assert lapsed.suspension_reason == "Insurance expired"
        assert not lapsed.can_work
        assert lapsed.quality_reviews[-1]["reason"] == "Insurance expired"
        assert outbox_titles("UserNotification") == ["⛔ Account Suspended - Insurance Expired"]
        assert outbox_titles("AdminAlert") == ["🚨 Contractor Insurance Expired"]

    def test_expiring_within_a_week_restricts(
        self, db, make_contractor, outbox_titles
    ) -> None:
        soon = _insured(make_contractor, 5)

        _run(db)

        db.refresh(soon)
        assert soon.is_active is False
        assert soon.suspension_status == SuspensionStatus.WARNING.value
        assert soon.suspension_reason == "Insurance expiring within 7 days"
        assert soon.quality_warnings[-1]["type"] == "warning"
        assert outbox_titles("UserNotification") == ["⚠️ Insurance Expiring - Account Restricted"]
        assert outbox_titles("AdminAlert") == []

    def test_expiring_within_a_month_reminds(
        self, db, make_contractor, outbox
    ) -> None:
        later = _insured(make_contractor, 20)

        _run(db)

        db.refresh(later)
        assert later.is_active is True
        assert later.suspension_status == SuspensionStatus.ACTIVE.value
        rows = outbox("UserNotification")
        assert [row.payload["title"] for row in rows] == ["📋 Insurance Renewal Reminder"]
        assert "expires in 20 days (22/03/2026)" in rows[0].payload["message"]

    def test_reminder_sent_once_per_day(self, db, make_contractor, outbox) -> None:
        _insured(make_contractor, 20)

        _run(db)
        _run(db)

        assert len(outbox("UserNotification")) == 1

    def test_far_off_or_unknown_expiry_ignored(self, db, make_contractor, outbox) -> None:
        _insured(make_contractor, 45)
        make_contractor(insurance_expiry_date=None)

        result = _run(db)

        assert result.processed == 0
        assert outbox() == []

    def test_already_inactive_contractor_not_suspended_again(
        self, db, make_contractor, outbox
    ) -> None:
        _insured(
            make_contractor,
            -10,
            is_active=False,
            suspension_status=SuspensionStatus.SUSPENDED.value,
        )

        result = _run(db)

        assert result.processed == 1
        assert result.succeeded == 0
        assert outbox() == []
