# lawnly/repositories/contractor_repository.py
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.contractor import ApprovalStatus, Contractor, ContractorTier
from .base_repository import BaseRepository


class ContractorRepository(BaseRepository[Contractor]):
    """Data access for contractor profiles."""

    def __init__(self, db: Session):
        super().__init__(db, Contractor)

    def get_by_user_id(self, user_id: str) -> Optional[Contractor]:
        return self.find_one_by(user_id=user_id)

    def find_active_approved(self) -> List[Contractor]:
        return self._run(
            "listing active contractors",
            lambda: self._query()
            .filter(
                Contractor.approval_status == ApprovalStatus.APPROVED.value,
                Contractor.is_active.is_(True),
            )
            .order_by(Contractor.created_at.asc())
            .all(),
        )

    def find_by_tier(self, tier: ContractorTier) -> List[Contractor]:
        return self._run(
            "listing contractors by tier",
            lambda: self._query()
            .filter(
                Contractor.tier == tier.value,
                Contractor.approval_status == ApprovalStatus.APPROVED.value,
                Contractor.is_active.is_(True),
            )
            .all(),
        )

    def find_with_insurance_expiring_by(self, last_day: date) -> List[Contractor]:
        """Approved contractors whose insurance expires on or before ``last_day``."""
        return self._run(
            "listing expiring insurance",
            lambda: self._query()
            .filter(
                Contractor.approval_status == ApprovalStatus.APPROVED.value,
                Contractor.insurance_expiry_date.isnot(None),
                Contractor.insurance_expiry_date <= last_day,
            )
            .all(),
        )
