# lawnly/models/contractor.py
"""
Contractor profile model.

Holds approval state, the tier that gates job admission, the rolling
quality metrics written by the quality control loop, insurance metadata
and the Stripe Connect account used for payouts.
"""

from datetime import date
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base
from .booking import JSON_TYPE


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    REJECTED = "rejected"


class ContractorTier(str, Enum):
    PROBATION = "probation"
    STANDARD = "standard"
    PREMIUM = "premium"


class SuspensionStatus(str, Enum):
    """Standing under the quality control loop, ordered by severity."""

    ACTIVE = "active"
    WARNING = "warning"
    REVIEW_REQUIRED = "review_required"
    SUSPENDED = "suspended"


class Contractor(Base):
    __tablename__ = "contractors"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, unique=True, index=True)
    business_name = Column(String(255), nullable=True)

    approval_status = Column(String(20), nullable=False, default=ApprovalStatus.PENDING.value)
    is_active = Column(Boolean, nullable=False, default=True)
    tier = Column(String(20), nullable=False, default=ContractorTier.PROBATION.value)

    # Rolling metrics
    completed_jobs_count = Column(Integer, nullable=False, default=0)
    cancelled_jobs_count = Column(Integer, nullable=False, default=0)
    disputed_jobs_count = Column(Integer, nullable=False, default=0)
    average_rating = Column(Numeric(3, 2), nullable=True)
    total_revenue = Column(Numeric(12, 2), nullable=False, default=0)
    last_active_at = Column(DateTime(timezone=True), nullable=True)

    # Standing
    suspension_status = Column(String(20), nullable=False, default=SuspensionStatus.ACTIVE.value)
    suspension_reason = Column(Text, nullable=True)
    suspended_at = Column(DateTime(timezone=True), nullable=True)
    quality_warnings = Column(JSON_TYPE, nullable=False, default=list)
    quality_reviews = Column(JSON_TYPE, nullable=False, default=list)

    # Insurance
    insurance_certificate_url = Column(Text, nullable=True)
    insurance_expiry_date = Column(Date, nullable=True)
    insurance_verified = Column(Boolean, nullable=False, default=False)

    # Payouts
    stripe_account_id = Column(String(255), nullable=True)
    stripe_onboarding_complete = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        CheckConstraint(
            "approval_status IN ('pending', 'approved', 'declined', 'rejected')",
            name="ck_contractors_approval_status",
        ),
        CheckConstraint(
            "tier IN ('probation', 'standard', 'premium')", name="ck_contractors_tier"
        ),
        CheckConstraint(
            "suspension_status IN ('active', 'warning', 'review_required', 'suspended')",
            name="ck_contractors_suspension_status",
        ),
    )

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED

    @property
    def can_work(self) -> bool:
        return (
            self.is_approved
            and bool(self.is_active)
            and self.suspension_status != SuspensionStatus.SUSPENDED
        )

    @property
    def payouts_enabled(self) -> bool:
        return bool(self.stripe_account_id) and bool(self.stripe_onboarding_complete)

    def days_until_insurance_expiry(self, today: date) -> Optional[int]:
        if self.insurance_expiry_date is None:
            return None
        return (self.insurance_expiry_date - today).days

    def __repr__(self) -> str:
        return f"<Contractor {self.id} tier={self.tier} standing={self.suspension_status}>"
