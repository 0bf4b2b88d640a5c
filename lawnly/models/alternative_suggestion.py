# lawnly/models/alternative_suggestion.py
"""
Alternative time suggestions proposed by contractors for pending bookings.
"""

from enum import Enum

from sqlalchemy import Column, Date, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class AlternativeSuggestion(Base):
    __tablename__ = "alternative_suggestions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False, index=True)
    contractor_id = Column(String(26), ForeignKey("contractors.id"), nullable=False, index=True)
    suggested_date = Column(Date, nullable=False)
    suggested_time_slot = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=SuggestionStatus.PENDING.value, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    booking = relationship("Booking")
    contractor = relationship("Contractor")

    __table_args__ = (
        UniqueConstraint(
            "booking_id",
            "suggested_date",
            "suggested_time_slot",
            name="uq_alternative_suggestions_booking_date_slot",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<AlternativeSuggestion {self.id} {self.suggested_date} "
            f"{self.suggested_time_slot} status={self.status}>"
        )
