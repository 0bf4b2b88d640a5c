"""Quote calculation for addresses and bookings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from lawnly.core.config import settings
from lawnly.core.exceptions import NotFoundException, ValidationException
from lawnly.domain.pricing_calculator import QuoteBreakdown, QuoteInput, calculate_quote
from lawnly.models.address import Address, AddressStatus
from lawnly.models.booking import Booking, GrassLength
from lawnly.models.pricing_setting import DEFAULT_PRICING_SETTINGS
from lawnly.principal import Principal
from lawnly.repositories.factory import RepositoryFactory
from lawnly.services.base import BaseService


@dataclass(frozen=True)
class QuoteResult:
    """Breakdown plus whether it was computed from verified property data."""

    breakdown: QuoteBreakdown
    address_id: str
    is_verified: bool

    @property
    def is_preliminary(self) -> bool:
        return not self.is_verified

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address_id": self.address_id,
            "is_verified": self.is_verified,
            "is_preliminary": self.is_preliminary,
            "breakdown": self.breakdown.to_dict(),
            "total": float(self.breakdown.total),
        }


class PricingService(BaseService):
    """Compute quotes against the current pricing settings."""

    def __init__(self, db: Session) -> None:
        super().__init__(db)
        self.address_repository = RepositoryFactory.create_base_repository(db, Address)
        self.pricing_setting_repository = RepositoryFactory.create_pricing_setting_repository(db)

    def quote_for(
        self,
        address: Address,
        *,
        service_date: date,
        grass_length: str,
        clippings_removal: bool,
        is_public_holiday: bool = False,
    ) -> QuoteBreakdown:
        """Price a job at ``address`` using its stored property data."""
        return calculate_quote(
            QuoteInput(
                square_meters=address.square_meters,
                slope=address.slope,
                tier_count=address.tier_count,
                grass_length=grass_length,
                clippings_removal=clippings_removal,
                service_date=service_date,
                is_public_holiday=is_public_holiday,
            ),
            self.pricing_setting_repository.get_rates(),
            gst_rate=settings.gst_rate,
            apply_holiday_surcharge=settings.apply_public_holiday_surcharge,
        )

    def quote_for_booking(self, booking: Booking, address: Address) -> QuoteBreakdown:
        """Recompute a booking's price from its stored date and service options."""
        return self.quote_for(
            address,
            service_date=booking.scheduled_date,
            grass_length=booking.grass_length,
            clippings_removal=bool(booking.clippings_removal),
            is_public_holiday=bool(booking.is_public_holiday),
        )

    @BaseService.measure_operation("calculate_quote")
    def calculate_quote(
        self,
        principal: Principal,
        *,
        address_id: str,
        service_date: date,
        grass_length: str = GrassLength.SHORT.value,
        clippings_removal: bool = False,
        is_public_holiday: bool = False,
    ) -> QuoteResult:
        address = self.address_repository.get_by_id(address_id)
        if not address:
            raise NotFoundException("Address not found")
        if not principal.is_admin and address.user_id != principal.user_id:
            raise NotFoundException("Address not found")
        if address.status == AddressStatus.REJECTED:
            raise ValidationException(
                "This address was rejected and cannot be booked", code="ADDRESS_REJECTED"
            )

        breakdown = self.quote_for(
            address,
            service_date=service_date,
            grass_length=grass_length,
            clippings_removal=clippings_removal,
            is_public_holiday=is_public_holiday,
        )
        return QuoteResult(
            breakdown=breakdown, address_id=address.id, is_verified=address.is_verified
        )

    @BaseService.measure_operation("update_pricing_setting")
    def update_setting(
        self, principal: Principal, key: str, value: Any, description: Optional[str] = None
    ) -> Dict[str, Decimal]:
        """Admin edit of one rate; returns the full effective table."""
        principal.require_admin()
        if key not in DEFAULT_PRICING_SETTINGS:
            raise ValidationException(f"Unknown pricing setting '{key}'", code="UNKNOWN_SETTING")
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationException(f"Invalid value for '{key}'", code="INVALID_SETTING_VALUE")
        if amount < 0:
            raise ValidationException(f"'{key}' must not be negative", code="INVALID_SETTING_VALUE")

        with self.transaction():
            self.pricing_setting_repository.upsert(key, amount, description)
        self.log_operation("pricing_setting_updated", key=key, value=str(amount))
        return self.pricing_setting_repository.get_rates()
