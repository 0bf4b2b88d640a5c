# lawnly/models/pricing_setting.py
"""
Admin-configurable pricing rates, stored as key/value rows.
"""

from decimal import Decimal
from typing import Dict

from sqlalchemy import Column, DateTime, Numeric, String, Text
from sqlalchemy.sql import func
import ulid

from ..database import Base

# Seed values for a fresh database; rows in the table always win.
DEFAULT_PRICING_SETTINGS: Dict[str, Decimal] = {
    "fixed_base_price": Decimal("25"),
    "base_price_per_sqm": Decimal("0.15"),
    "slope_mild_multiplier": Decimal("1.15"),
    "slope_steep_multiplier": Decimal("1.35"),
    "tier_multiplier": Decimal("0.1"),
    "grass_length_short": Decimal("1.0"),
    "grass_length_medium": Decimal("1.25"),
    "grass_length_long": Decimal("1.5"),
    "grass_length_very_long": Decimal("2.0"),
    "clipping_removal_cost": Decimal("15"),
    "saturday_surcharge": Decimal("1.25"),
    "sunday_surcharge": Decimal("1.5"),
    "public_holiday_surcharge": Decimal("2.0"),
}


class PricingSetting(Base):
    __tablename__ = "pricing_settings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    key = Column(String(100), nullable=False, unique=True)
    value = Column(Numeric(10, 4), nullable=False)
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<PricingSetting {self.key}={self.value}>"
