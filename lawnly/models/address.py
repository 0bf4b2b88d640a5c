# lawnly/models/address.py
"""
Customer property addresses.

An address carries the property data that drives pricing. Customers
supply estimates when booking; an admin later verifies or rejects them.
"""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class AddressStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class SlopeType(str, Enum):
    FLAT = "flat"
    MILD = "mild"
    STEEP = "steep"


class Address(Base):
    __tablename__ = "addresses"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)

    street_address = Column(String(255), nullable=False)
    suburb = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    postal_code = Column(String(10), nullable=True)

    # Property data used for pricing
    square_meters = Column(Numeric(10, 2), nullable=True)
    slope = Column(String(10), nullable=False, default=SlopeType.FLAT.value)
    tier_count = Column(Integer, nullable=False, default=1)

    status = Column(String(20), nullable=False, default=AddressStatus.PENDING.value, index=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(String(26), ForeignKey("users.id"), nullable=True)
    admin_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    owner = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'verified', 'rejected')", name="ck_addresses_status"
        ),
        CheckConstraint("slope IN ('flat', 'mild', 'steep')", name="ck_addresses_slope"),
        CheckConstraint("tier_count >= 1", name="ck_addresses_tier_count"),
    )

    @property
    def is_verified(self) -> bool:
        return self.status == AddressStatus.VERIFIED

    def __repr__(self) -> str:
        return f"<Address {self.id} status={self.status}>"
