# lawnly/models/dispute.py
"""
Dispute model.

A dispute is raised against exactly one booking, either by the customer
after completion or implicitly when the contractor reports issues. It is
terminal once resolved and never reopens.
"""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
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


class DisputeStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"


class DisputeResolution(str, Enum):
    FULL_REFUND = "full_refund"
    PARTIAL_REFUND = "partial_refund"
    NO_REFUND = "no_refund"


class DisputeReason(str, Enum):
    POOR_QUALITY = "poor_quality"
    PARTIAL_COMPLETION = "partial_completion"
    PROPERTY_DAMAGE = "property_damage"
    NO_SHOW = "no_show"
    OTHER = "other"


class DisputeRaiser(str, Enum):
    CUSTOMER = "customer"
    CONTRACTOR = "contractor"


class RefundFunding(str, Enum):
    PAYMENT = "payment"  # Refund of the original charge before payout
    PLATFORM = "platform"  # Contractor already paid; platform absorbs the refund


class Dispute(Base):
    __tablename__ = "disputes"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False, index=True)

    raised_by = Column(String(26), ForeignKey("users.id"), nullable=False)
    raised_by_role = Column(String(20), nullable=False)
    description = Column(Text, nullable=False)
    dispute_reason = Column(String(30), nullable=False, default=DisputeReason.OTHER.value)
    suggested_refund_amount = Column(Numeric(10, 2), nullable=True)
    customer_evidence_photos = Column(JSON_TYPE, nullable=False, default=list)
    contractor_evidence_photos = Column(JSON_TYPE, nullable=False, default=list)
    contractor_response = Column(Text, nullable=True)
    is_post_payment = Column(Boolean, nullable=False, default=False)

    status = Column(String(20), nullable=False, default=DisputeStatus.PENDING.value, index=True)
    resolution = Column(String(20), nullable=True)
    refund_percentage = Column(Integer, nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)
    refund_id = Column(String(255), nullable=True)
    refund_funded_by = Column(String(20), nullable=True)
    admin_notes = Column(Text, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(26), ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    booking = relationship("Booking", back_populates="disputes")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'under_review', 'resolved')", name="ck_disputes_status"
        ),
        CheckConstraint(
            "resolution IS NULL OR resolution IN ('full_refund', 'partial_refund', 'no_refund')",
            name="ck_disputes_resolution",
        ),
        CheckConstraint(
            "refund_percentage IS NULL OR (refund_percentage >= 0 AND refund_percentage <= 100)",
            name="ck_disputes_refund_percentage",
        ),
    )

    @property
    def is_resolved(self) -> bool:
        return self.status == DisputeStatus.RESOLVED

    def __repr__(self) -> str:
        return f"<Dispute {self.id} booking={self.booking_id} status={self.status}>"
