"""Tests for the scheduled tier promotion loop."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from lawnly.models import (
    Booking,
    BookingStatus,
    ContractorTier,
    Dispute,
    DisputeRaiser,
    PaymentStatus,
)
from lawnly.services.tier_promotion_service import TierPromotionService

FROZEN_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def finished_jobs(db, customer, address):
    """Bulk-insert finished, rated jobs for a contractor."""

    def _make(contractor, count: int, rating: int = 5):
        jobs = [
            Booking(
                customer_id=customer.id,
                address_id=address.id,
                contractor_id=contractor.id,
                scheduled_date=date(2026, 1, 5) + timedelta(days=i % 50),
                time_slot="early",
                grass_length="short",
                clippings_removal=False,
                total_price=Decimal("40.00"),
                status=BookingStatus.COMPLETED.value,
                payment_status=PaymentStatus.PAID.value,
                customer_rating=rating,
                completed_at=FROZEN_NOW - timedelta(days=30),
            )
            for i in range(count)
        ]
        db.add_all(jobs)
        db.commit()
        return jobs

    return _make


def _run(db):
    return TierPromotionService(db).run(now=FROZEN_NOW)


@pytest.mark.unit
class TestProbationPromotion:
    def test_five_good_jobs_promote(
        self, db, make_contractor, finished_jobs, outbox
    ) -> None:
        newbie = make_contractor(tier=ContractorTier.PROBATION.value)
        finished_jobs(newbie, 4, rating=5)
        finished_jobs(newbie, 1, rating=4)  # average 4.8

        result = _run(db)

        db.refresh(newbie)
        assert newbie.tier == ContractorTier.STANDARD.value
        assert result.succeeded == 1
        rows = outbox("UserNotification")
        assert [row.payload["title"] for row in rows] == ["🎉 Promoted to Verified Contractor!"]
        assert rows[0].payload["send_email"] is True

    @pytest.mark.parametrize("count, rating", [(4, 5), (10, 4)])
    def test_not_yet_eligible(self, db, make_contractor, finished_jobs, count, rating) -> None:
        newbie = make_contractor(tier=ContractorTier.PROBATION.value)
        finished_jobs(newbie, count, rating=rating)

        result = _run(db)

        db.refresh(newbie)
        assert newbie.tier == ContractorTier.PROBATION.value
        assert result.processed == 1
        assert result.succeeded == 0

    def test_promotion_happens_once(self, db, make_contractor, finished_jobs, outbox) -> None:
        newbie = make_contractor(tier=ContractorTier.PROBATION.value)
        finished_jobs(newbie, 5)

        _run(db)
        _run(db)

        db.refresh(newbie)
        assert newbie.tier == ContractorTier.STANDARD.value
        assert len(outbox("UserNotification")) == 1


@pytest.mark.unit
class TestPremiumPromotion:
    def test_premium_needs_a_busy_platform(self, db, contractor, finished_jobs) -> None:
        finished_jobs(contractor, 49)

        result = _run(db)

        db.refresh(contractor)
        assert contractor.tier == ContractorTier.STANDARD.value
        assert result.processed == 0

    def test_top_performer_promoted(self, db, contractor, finished_jobs, outbox_titles) -> None:
        finished_jobs(contractor, 50)

        _run(db)

        db.refresh(contractor)
        assert contractor.tier == ContractorTier.PREMIUM.value
        assert outbox_titles("UserNotification") == ["⭐ Promoted to Premium Contractor!"]

    def test_dispute_rate_blocks_premium(
        self, db, contractor, customer, finished_jobs
    ) -> None:
        jobs = finished_jobs(contractor, 50)
        for job in jobs[:2]:
            db.add(
                Dispute(
                    booking_id=job.id,
                    raised_by=customer.id,
                    raised_by_role=DisputeRaiser.CUSTOMER.value,
                    description="Back corner was left unmown",
                )
            )
        db.commit()

        _run(db)

        db.refresh(contractor)
        assert contractor.tier == ContractorTier.STANDARD.value

    def test_tiers_never_drop(self, db, make_contractor, finished_jobs) -> None:
        premium = make_contractor(tier=ContractorTier.PREMIUM.value)
        finished_jobs(premium, 3, rating=2)

        _run(db)

        db.refresh(premium)
        assert premium.tier == ContractorTier.PREMIUM.value
