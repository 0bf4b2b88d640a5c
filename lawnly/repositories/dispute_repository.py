# lawnly/repositories/dispute_repository.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models.booking import Booking
from ..models.dispute import Dispute, DisputeRaiser, DisputeStatus
from .base_repository import BaseRepository

OPEN_STATUSES = (DisputeStatus.PENDING.value, DisputeStatus.UNDER_REVIEW.value)


class DisputeRepository(BaseRepository[Dispute]):
    """Data access for disputes."""

    def __init__(self, db: Session):
        super().__init__(db, Dispute)

    def get_open_for_booking(self, booking_id: str) -> Optional[Dispute]:
        return self._run(
            "finding open dispute",
            lambda: self._query()
            .filter(Dispute.booking_id == booking_id, Dispute.status.in_(OPEN_STATUSES))
            .order_by(Dispute.created_at.desc())
            .first(),
        )

    def find_for_booking(self, booking_id: str) -> List[Dispute]:
        return self._run(
            "listing disputes for booking",
            lambda: self._query()
            .filter(Dispute.booking_id == booking_id)
            .order_by(Dispute.created_at.asc())
            .all(),
        )

    def count_for_contractor(
        self, contractor_id: str, raised_by: Optional[DisputeRaiser] = None
    ) -> int:
        """Disputes on any of the contractor's bookings, optionally only those one side raised."""

        def _q() -> int:
            query = self._query().join(Booking, Booking.id == Dispute.booking_id).filter(
                Booking.contractor_id == contractor_id
            )
            if raised_by is not None:
                query = query.filter(Dispute.raised_by_role == raised_by.value)
            return query.count()

        return self._run("counting contractor disputes", _q)

    def mark_resolved(
        self,
        dispute_id: str,
        *,
        resolution: str,
        refund_percentage: int,
        refund_amount: Decimal,
        refund_funded_by: Optional[str],
        resolved_by: str,
        resolved_at: datetime,
        admin_notes: Optional[str] = None,
    ) -> bool:
        """
        Stamp every resolution field in one conditional UPDATE.

        Returns False if the dispute was already resolved.
        """
        stmt = (
            update(Dispute)
            .where(Dispute.id == dispute_id, Dispute.status.in_(OPEN_STATUSES))
            .values(
                status=DisputeStatus.RESOLVED.value,
                resolution=resolution,
                refund_percentage=refund_percentage,
                refund_amount=refund_amount,
                refund_funded_by=refund_funded_by,
                resolved_by=resolved_by,
                resolved_at=resolved_at,
                admin_notes=admin_notes,
            )
            .execution_options(synchronize_session="fetch")
        )
        result = self._run("resolving dispute", lambda: self.db.execute(stmt))
        return bool(result.rowcount)
