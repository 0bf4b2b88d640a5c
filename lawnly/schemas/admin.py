# lawnly/schemas/admin.py
"""Admin-only request schemas."""

from decimal import Decimal
from typing import Optional

from pydantic import Field

from ..models.address import SlopeType
from ..models.contractor import SuspensionStatus
from ._strict_base import StrictRequestModel


class AddressVerificationRequest(StrictRequestModel):
    """Approve with measured property data, or reject the address."""

    approved: bool
    square_meters: Optional[Decimal] = Field(default=None, gt=0)
    slope: Optional[SlopeType] = None
    tier_count: Optional[int] = Field(default=None, ge=1)
    admin_notes: Optional[str] = Field(default=None, max_length=2000)


class StandingOverrideRequest(StrictRequestModel):
    status: SuspensionStatus
    reason: str = Field(..., min_length=1, max_length=1000)


class PricingSettingUpdate(StrictRequestModel):
    value: Decimal
    description: Optional[str] = Field(default=None, max_length=255)
