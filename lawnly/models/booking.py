# lawnly/models/booking.py
"""
Booking model for the Lawnly marketplace.

A booking is a customer's request to have a lawn mowed on a given day.
It carries the locked-in quote, the assigned contractor, the payment and
payout state, and the completion artifacts reported by the contractor.

Status changes are validated by ``lawnly.domain.booking_state_machine``;
nothing should assign ``status`` without going through it.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING_ADDRESS_VERIFICATION = "pending_address_verification"
    PRICE_CHANGE_PENDING = "price_change_pending"
    PENDING = "pending"  # Visible to contractors
    CONFIRMED = "confirmed"  # Assigned and paid
    COMPLETED_PENDING_VERIFICATION = "completed_pending_verification"
    COMPLETED_WITH_ISSUES = "completed_with_issues"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"
    POST_PAYMENT_DISPUTE = "post_payment_dispute"


class TimeSlot(str, Enum):
    EARLY = "early"
    LATE_MORNING = "late_morning"
    AFTERNOON = "afternoon"


class GrassLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"
    VERY_LONG = "very_long"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    FROZEN = "frozen"
    RELEASED = "released"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"


JSON_TYPE = JSONB(astext_type=Text()).with_variant(JSON(), "sqlite")

AUTO_RATING_COMMENT = "Auto-rated: no review submitted within 48 hours"


class Booking(Base):
    """
    A single lawn-mowing job from quote through settlement.

    ``total_price`` is always the amount charged. ``original_price`` is
    set only when address verification moved the price by more than the
    configured threshold.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    # Parties
    customer_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    address_id = Column(String(26), ForeignKey("addresses.id"), nullable=False, index=True)
    contractor_id = Column(String(26), ForeignKey("contractors.id"), nullable=True, index=True)
    preferred_contractor_id = Column(String(26), ForeignKey("contractors.id"), nullable=True)

    # Scheduling
    scheduled_date = Column(Date, nullable=False, index=True)
    time_slot = Column(String(20), nullable=False)
    is_weekend = Column(Boolean, nullable=False, default=False)
    is_public_holiday = Column(Boolean, nullable=False, default=False)

    # Service options
    grass_length = Column(String(20), nullable=False, default=GrassLength.SHORT.value)
    clippings_removal = Column(Boolean, nullable=False, default=False)

    # Pricing
    total_price = Column(Numeric(10, 2), nullable=False)
    original_price = Column(Numeric(10, 2), nullable=True)
    quote_breakdown = Column(JSON_TYPE, nullable=True)
    price_change_notified_at = Column(DateTime(timezone=True), nullable=True, index=True)

    status = Column(
        String(40),
        nullable=False,
        default=BookingStatus.PENDING_ADDRESS_VERIFICATION.value,
        index=True,
    )

    # Payment
    payment_status = Column(String(30), nullable=False, default=PaymentStatus.UNPAID.value)
    payment_intent_id = Column(String(255), nullable=True)
    charged_at = Column(DateTime(timezone=True), nullable=True)

    # Payout
    payout_status = Column(String(30), nullable=True, index=True)
    payout_released_at = Column(DateTime(timezone=True), nullable=True)
    stripe_payout_id = Column(String(255), nullable=True)

    # Assignment
    contractor_accepted_at = Column(DateTime(timezone=True), nullable=True)

    # Completion artifacts
    completed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    contractor_issues = Column(JSON_TYPE, nullable=True)
    contractor_issue_notes = Column(Text, nullable=True)
    contractor_issue_photos = Column(JSON_TYPE, nullable=True)

    # Customer review
    customer_rating = Column(Integer, nullable=True)
    rating_comment = Column(Text, nullable=True)
    rating_submitted_at = Column(DateTime(timezone=True), nullable=True)
    contractor_rating_response = Column(Text, nullable=True)
    contractor_response_at = Column(DateTime(timezone=True), nullable=True)

    admin_notes = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    customer = relationship("User", foreign_keys=[customer_id])
    address = relationship("Address", foreign_keys=[address_id])
    contractor = relationship("Contractor", foreign_keys=[contractor_id])
    disputes = relationship("Dispute", back_populates="booking", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("total_price >= 0", name="ck_bookings_total_price_non_negative"),
        CheckConstraint(
            "customer_rating IS NULL OR (customer_rating >= 1 AND customer_rating <= 5)",
            name="ck_bookings_rating_range",
        ),
        CheckConstraint(
            "time_slot IN ('early', 'late_morning', 'afternoon')", name="ck_bookings_time_slot"
        ),
        Index("ix_bookings_contractor_status", "contractor_id", "status"),
    )

    @property
    def total_price_decimal(self) -> Decimal:
        return Decimal(str(self.total_price)).quantize(Decimal("0.01"))

    def is_owned_by(self, user_id: str) -> bool:
        return self.customer_id == user_id

    def to_dict(self) -> Dict[str, Any]:
        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        issues: List[str] = list(self.contractor_issues or [])
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "contractor_id": self.contractor_id,
            "address_id": self.address_id,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "time_slot": self.time_slot,
            "grass_length": self.grass_length,
            "clippings_removal": self.clippings_removal,
            "status": self.status,
            "total_price": float(self.total_price) if self.total_price is not None else None,
            "original_price": float(self.original_price) if self.original_price is not None else None,
            "quote_breakdown": self.quote_breakdown,
            "payment_status": self.payment_status,
            "payout_status": self.payout_status,
            "contractor_issues": issues,
            "customer_rating": self.customer_rating,
            "completed_at": _iso(self.completed_at),
            "payout_released_at": _iso(self.payout_released_at),
        }

    def __repr__(self) -> str:
        return f"<Booking {self.id} status={self.status} total={self.total_price}>"
