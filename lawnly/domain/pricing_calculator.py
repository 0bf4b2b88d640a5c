# lawnly/domain/pricing_calculator.py
"""
Quote calculation for lawn-mowing jobs.

Pure function of property attributes, service options, service date and
the rate table. No database access happens here; callers load the rates
through ``PricingSettingRepository``.

    base      = fixed_base_price
    area      = square_meters * base_price_per_sqm
    subtotal  = (base + area) * slope * tier * grass
    total_ex  = subtotal * day_surcharge + clippings
    total     = total_ex * (1 + gst_rate)
"""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Any, Dict, Mapping

from ..core.exceptions import ValidationException
from ..models.address import SlopeType
from ..models.booking import GrassLength
from ..models.pricing_setting import DEFAULT_PRICING_SETTINGS

CENT = Decimal("0.01")
ONE = Decimal("1")

SATURDAY = 5
SUNDAY = 6


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal) -> int:
    """Convert a currency amount to processor minor units, rounding half up."""
    return int((Decimal(value) * 100).quantize(ONE, rounding=ROUND_HALF_UP))


def floor_cents(value: Decimal) -> int:
    return int(Decimal(value).quantize(ONE, rounding=ROUND_FLOOR))


@dataclass(frozen=True)
class QuoteInput:
    square_meters: Decimal
    slope: str
    tier_count: int
    grass_length: str
    clippings_removal: bool
    service_date: date
    is_public_holiday: bool = False


@dataclass(frozen=True)
class QuoteBreakdown:
    base_price: Decimal
    area_price: Decimal
    slope_multiplier: Decimal
    tier_multiplier: Decimal
    grass_multiplier: Decimal
    clippings_cost: Decimal
    day_surcharge: Decimal
    subtotal: Decimal
    gst: Decimal
    total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        # Stored in a JSON column, so money goes out as floats
        return {
            "base_price": float(self.base_price),
            "area_price": float(self.area_price),
            "slope_multiplier": float(self.slope_multiplier),
            "tier_multiplier": float(self.tier_multiplier),
            "grass_multiplier": float(self.grass_multiplier),
            "clippings_cost": float(self.clippings_cost),
            "day_surcharge": float(self.day_surcharge),
            "subtotal": float(self.subtotal),
            "gst": float(self.gst),
            "total": float(self.total),
        }


def _rate(rates: Mapping[str, Decimal], key: str) -> Decimal:
    value = rates.get(key)
    if value is None:
        value = DEFAULT_PRICING_SETTINGS.get(key)
    if value is None:
        raise ValidationException(
            f"Missing pricing setting '{key}'", code="PRICING_SETTING_MISSING"
        )
    return Decimal(str(value))


def slope_multiplier(slope: str, rates: Mapping[str, Decimal]) -> Decimal:
    if slope == SlopeType.MILD:
        return _rate(rates, "slope_mild_multiplier")
    if slope == SlopeType.STEEP:
        return _rate(rates, "slope_steep_multiplier")
    return ONE


def tier_multiplier(tier_count: int, rates: Mapping[str, Decimal]) -> Decimal:
    extra_tiers = max(int(tier_count or 1), 1) - 1
    return ONE + extra_tiers * _rate(rates, "tier_multiplier")


def grass_multiplier(grass_length: str, rates: Mapping[str, Decimal]) -> Decimal:
    try:
        GrassLength(grass_length)
    except ValueError:
        raise ValidationException(
            f"Unknown grass length '{grass_length}'", code="INVALID_GRASS_LENGTH"
        )
    return _rate(rates, f"grass_length_{grass_length}")


def day_surcharge(
    service_date: date,
    rates: Mapping[str, Decimal],
    *,
    is_public_holiday: bool = False,
    apply_holiday_surcharge: bool = False,
) -> Decimal:
    """
    Weekend surcharge for the service date.

    The public holiday rate is applied only when the booking carries the
    holiday flag and holiday pricing is switched on.
    """
    if is_public_holiday and apply_holiday_surcharge:
        return _rate(rates, "public_holiday_surcharge")
    weekday = service_date.weekday()
    if weekday == SATURDAY:
        return _rate(rates, "saturday_surcharge")
    if weekday == SUNDAY:
        return _rate(rates, "sunday_surcharge")
    return ONE


def is_weekend(service_date: date) -> bool:
    return service_date.weekday() in (SATURDAY, SUNDAY)


def calculate_quote(
    quote: QuoteInput,
    rates: Mapping[str, Decimal],
    *,
    gst_rate: Decimal = Decimal("0"),
    apply_holiday_surcharge: bool = False,
) -> QuoteBreakdown:
    """Compute the full price breakdown for a job."""
    if quote.square_meters is None:
        raise ValidationException(
            "Property area is required to calculate a quote", code="AREA_REQUIRED"
        )
    square_meters = Decimal(str(quote.square_meters))
    if square_meters <= 0:
        raise ValidationException("Property area must be positive", code="AREA_REQUIRED")

    base = _rate(rates, "fixed_base_price")
    area = square_meters * _rate(rates, "base_price_per_sqm")
    slope = slope_multiplier(quote.slope, rates)
    tiers = tier_multiplier(quote.tier_count, rates)
    grass = grass_multiplier(quote.grass_length, rates)
    clippings = _rate(rates, "clipping_removal_cost") if quote.clippings_removal else Decimal("0")
    surcharge = day_surcharge(
        quote.service_date,
        rates,
        is_public_holiday=quote.is_public_holiday,
        apply_holiday_surcharge=apply_holiday_surcharge,
    )

    subtotal = (base + area) * slope * tiers * grass
    total_ex_gst = round_money(subtotal * surcharge + clippings)
    total = round_money(total_ex_gst * (ONE + Decimal(str(gst_rate))))

    return QuoteBreakdown(
        base_price=round_money(base),
        area_price=round_money(area),
        slope_multiplier=slope,
        tier_multiplier=tiers,
        grass_multiplier=grass,
        clippings_cost=round_money(clippings),
        day_surcharge=surcharge,
        subtotal=round_money(subtotal),
        gst=total - total_ex_gst,
        total=total,
    )
