# lawnly/repositories/booking_repository.py
"""
Booking Repository for the Lawnly booking core.

Holds every booking query used by the workflows, including the
conditional assignment update that keeps two contractors from accepting
the same job, and the aggregate queries behind contractor metrics.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..models.booking import Booking, BookingStatus, PayoutStatus
from .base_repository import BaseRepository

ACTIVE_JOB_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.PENDING.value)

# Statuses reached only after the contractor reported the job done
COMPLETED_JOB_STATUSES = (
    BookingStatus.COMPLETED.value,
    BookingStatus.COMPLETED_PENDING_VERIFICATION.value,
    BookingStatus.COMPLETED_WITH_ISSUES.value,
    BookingStatus.DISPUTED.value,
    BookingStatus.POST_PAYMENT_DISPUTE.value,
)


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    # ------------------------------------------------------------------ lookups
    def find_by_address_and_status(self, address_id: str, status: BookingStatus) -> List[Booking]:
        return self._run(
            "finding bookings by address",
            lambda: self._query()
            .filter(Booking.address_id == address_id, Booking.status == status.value)
            .order_by(Booking.created_at.asc())
            .all(),
        )

    def find_stale_price_changes(self, cutoff: datetime) -> List[Booking]:
        """Bookings awaiting price approval whose notice went out before ``cutoff``."""
        return self._run(
            "finding stale price changes",
            lambda: self._query()
            .filter(
                Booking.status == BookingStatus.PRICE_CHANGE_PENDING.value,
                Booking.price_change_notified_at.isnot(None),
                Booking.price_change_notified_at < cutoff,
            )
            .all(),
        )

    def find_due_for_auto_release(self, cutoff: datetime) -> List[Booking]:
        return self._run(
            "finding payouts due for auto release",
            lambda: self._query()
            .filter(
                Booking.status == BookingStatus.COMPLETED_PENDING_VERIFICATION.value,
                Booking.payout_status == PayoutStatus.PENDING.value,
                Booking.completed_at.isnot(None),
                Booking.completed_at < cutoff,
            )
            .order_by(Booking.completed_at.asc())
            .all(),
        )

    # ------------------------------------------------------------- assignment
    def claim_for_contractor(
        self, booking_id: str, contractor_id: str, accepted_at: datetime
    ) -> bool:
        """
        Assign a pending, unassigned booking in a single conditional UPDATE.

        Returns False when another contractor got there first or the booking
        left ``pending``.
        """
        stmt = (
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status == BookingStatus.PENDING.value,
                Booking.contractor_id.is_(None),
            )
            .values(
                status=BookingStatus.CONFIRMED.value,
                contractor_id=contractor_id,
                contractor_accepted_at=accepted_at,
            )
            .execution_options(synchronize_session="fetch")
        )
        result = self._run("claiming booking", lambda: self.db.execute(stmt))
        return bool(result.rowcount)

    def count_active_jobs(self, contractor_id: str) -> int:
        return self._run(
            "counting active jobs",
            lambda: self._query()
            .filter(
                Booking.contractor_id == contractor_id,
                Booking.status.in_(ACTIVE_JOB_STATUSES),
            )
            .count(),
        )

    # ---------------------------------------------------------------- metrics
    def count_cancellations_since(self, contractor_id: str, since: datetime) -> int:
        return self._run(
            "counting cancellations",
            lambda: self._query()
            .filter(
                Booking.contractor_id == contractor_id,
                Booking.status == BookingStatus.CANCELLED.value,
                Booking.cancelled_at >= since,
            )
            .count(),
        )

    def count_cancelled_jobs(self, contractor_id: str) -> int:
        return self.count(contractor_id=contractor_id, status=BookingStatus.CANCELLED.value)

    def count_ratings_since(self, contractor_id: str, rating: int, since: datetime) -> int:
        return self._run(
            "counting ratings",
            lambda: self._query()
            .filter(
                Booking.contractor_id == contractor_id,
                Booking.customer_rating == rating,
                Booking.rating_submitted_at >= since,
            )
            .count(),
        )

    def count_completed_jobs(
        self,
        contractor_id: Optional[str] = None,
        statuses: Iterable[str] = COMPLETED_JOB_STATUSES,
    ) -> int:
        """Jobs the contractor finished, or platform-wide when no contractor is given."""

        def _q() -> int:
            query = self._query().filter(Booking.status.in_(list(statuses)))
            if contractor_id is not None:
                query = query.filter(Booking.contractor_id == contractor_id)
            return query.count()

        return self._run("counting completed jobs", _q)

    def average_rating(self, contractor_id: str) -> Optional[Decimal]:
        value = self._run(
            "averaging ratings",
            lambda: self.db.query(func.avg(Booking.customer_rating))
            .filter(
                Booking.contractor_id == contractor_id,
                Booking.customer_rating.isnot(None),
            )
            .scalar(),
        )
        if value is None:
            return None
        return Decimal(str(value)).quantize(Decimal("0.01"))

    def total_released_revenue(self, contractor_id: str) -> Decimal:
        value = self._run(
            "summing revenue",
            lambda: self.db.query(func.coalesce(func.sum(Booking.total_price), 0))
            .filter(
                Booking.contractor_id == contractor_id,
                Booking.payout_status.in_(
                    [PayoutStatus.RELEASED.value, PayoutStatus.PARTIAL_REFUND.value]
                ),
            )
            .scalar(),
        )
        return Decimal(str(value or 0)).quantize(Decimal("0.01"))

    def last_activity_at(self, contractor_id: str) -> Optional[datetime]:
        return self._run(
            "finding last activity",
            lambda: self.db.query(func.max(Booking.completed_at))
            .filter(Booking.contractor_id == contractor_id)
            .scalar(),
        )
