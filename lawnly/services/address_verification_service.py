# lawnly/services/address_verification_service.py
"""
Address Verification Gate.

When an admin verifies or rejects an address, every booking on it that is
still waiting for verification is reconciled in the same transaction:

- rejected address: bookings cancelled, customer told why
- verified, price up beyond the threshold: ``price_change_pending`` and the
  customer must approve the new price within the approval window
- verified, price down or within the threshold: ``pending`` and visible to
  contractors; a lower price is applied directly

The customer's side of the price gate (approve or decline) lives here too.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import NotificationSeverity
from ..core.exceptions import NotFoundException, ValidationException
from ..domain.booking_state_machine import transition
from ..domain.pricing_calculator import QuoteBreakdown
from ..events.side_effects import AdminAlert, OperationResult, SideEffect, UserNotification
from ..models.address import Address, AddressStatus, SlopeType
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..principal import Principal
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .pricing_service import PricingService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceDecision:
    """How a recomputed quote relates to what the customer was quoted."""

    original: Decimal
    recomputed: Decimal
    requires_approval: bool
    apply_new_price: bool
    record_original: bool


def exceeds_threshold(original: Decimal, recomputed: Decimal) -> bool:
    """True when the price moved by more than the configured threshold."""
    difference = abs(recomputed - original)
    threshold = Decimal(str(settings.price_change_threshold))
    if settings.price_change_threshold_mode == "relative":
        if original <= 0:
            return difference > 0
        return difference / original * 100 > threshold
    return difference > threshold


def decide_price_change(original: Decimal, recomputed: Decimal) -> PriceDecision:
    """
    Increases beyond the threshold need the customer's approval; decreases
    are always passed on; small increases are absorbed.
    """
    significant = exceeds_threshold(original, recomputed)
    if recomputed > original:
        return PriceDecision(
            original=original,
            recomputed=recomputed,
            requires_approval=significant,
            apply_new_price=significant,
            record_original=significant,
        )
    return PriceDecision(
        original=original,
        recomputed=recomputed,
        requires_approval=False,
        apply_new_price=recomputed < original,
        record_original=significant,
    )


class AddressVerificationService(BaseService):
    """Reconciles bookings with admin-verified property data."""

    def __init__(self, db: Session, pricing_service: Optional[PricingService] = None):
        super().__init__(db)
        self.address_repository = RepositoryFactory.create_base_repository(db, Address)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.pricing_service = pricing_service or PricingService(db)

    @BaseService.measure_operation("verify_address")
    def verify_address(
        self,
        principal: Principal,
        address_id: str,
        *,
        approved: bool,
        square_meters: Optional[Decimal] = None,
        slope: Optional[str] = None,
        tier_count: Optional[int] = None,
        admin_notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """
        Record the admin's verdict on an address and reconcile its bookings.

        Returns:
            OperationResult whose ``data["updated"]`` is the number of bookings touched
        """
        principal.require_admin()
        current_time = self.now(now)

        with self.transaction():
            address = self.address_repository.get_by_id(address_id, for_update=True)
            if not address:
                raise NotFoundException("Address not found")

            self._apply_verdict(
                address,
                principal=principal,
                approved=approved,
                square_meters=square_meters,
                slope=slope,
                tier_count=tier_count,
                admin_notes=admin_notes,
                at=current_time,
            )

            bookings = self.booking_repository.find_by_address_and_status(
                address.id, BookingStatus.PENDING_ADDRESS_VERIFICATION
            )
            effects: List[SideEffect] = []
            for booking in bookings:
                if approved:
                    effects.extend(self._reprice_booking(booking, address, current_time))
                else:
                    effects.extend(self._cancel_for_rejection(booking, current_time))

            self.publish(effects, scope=f"verify_address:{address.id}:{address.status}")

        self.log_operation(
            "address_verified" if approved else "address_rejected",
            address_id=address_id,
            bookings=len(bookings),
        )
        message = (
            "Bookings processed" if approved else "Bookings cancelled due to address rejection"
        )
        if not bookings:
            message = "No pending bookings"
        return OperationResult(
            message=message,
            data={"address_id": address_id, "updated": len(bookings)},
            side_effects=effects,
        )

    def _apply_verdict(
        self,
        address: Address,
        *,
        principal: Principal,
        approved: bool,
        square_meters: Optional[Decimal],
        slope: Optional[str],
        tier_count: Optional[int],
        admin_notes: Optional[str],
        at: datetime,
    ) -> None:
        if square_meters is not None:
            if Decimal(str(square_meters)) <= 0:
                raise ValidationException("Lawn area must be positive", code="INVALID_AREA")
            address.square_meters = square_meters
        if slope is not None:
            try:
                address.slope = SlopeType(slope).value
            except ValueError:
                raise ValidationException(f"Unknown slope '{slope}'", code="INVALID_SLOPE")
        if tier_count is not None:
            if tier_count < 1:
                raise ValidationException("Tier count must be at least 1", code="INVALID_TIERS")
            address.tier_count = tier_count
        if approved and address.square_meters is None:
            raise ValidationException(
                "Lawn area must be set before an address can be verified", code="AREA_REQUIRED"
            )

        address.status = (AddressStatus.VERIFIED if approved else AddressStatus.REJECTED).value
        address.verified_at = at
        address.verified_by = principal.user_id if not principal.is_system else None
        if admin_notes is not None:
            address.admin_notes = admin_notes

    def _cancel_for_rejection(self, booking: Booking, at: datetime) -> List[SideEffect]:
        transition(booking, BookingStatus.CANCELLED)
        booking.cancelled_at = at
        return [
            UserNotification(
                user_id=booking.customer_id,
                title="Booking Cancelled - Address Rejected",
                message=(
                    "Your booking has been cancelled because your address could not be verified. "
                    "Please contact us if you believe this is an error."
                ),
                severity=NotificationSeverity.WARNING.value,
                booking_id=booking.id,
                send_email=True,
            )
        ]

    def _reprice_booking(
        self, booking: Booking, address: Address, at: datetime
    ) -> List[SideEffect]:
        breakdown: QuoteBreakdown = self.pricing_service.quote_for_booking(booking, address)
        decision = decide_price_change(booking.total_price_decimal, breakdown.total)
        logger.info(
            "Quote recalculated",
            extra={
                "booking_id": booking.id,
                "original": str(decision.original),
                "recomputed": str(decision.recomputed),
                "requires_approval": decision.requires_approval,
            },
        )

        if decision.requires_approval:
            transition(booking, BookingStatus.PRICE_CHANGE_PENDING)
            booking.original_price = decision.original
            booking.total_price = decision.recomputed
            booking.quote_breakdown = breakdown.to_dict()
            booking.price_change_notified_at = at
            return [
                UserNotification(
                    user_id=booking.customer_id,
                    title="Price Update - Action Required",
                    message=(
                        f"Your address has been verified and the updated price is "
                        f"${decision.recomputed:.2f} (was ${decision.original:.2f}). Please review "
                        f"and approve the new price within {settings.price_change_approval_days} "
                        "days to confirm your booking."
                    ),
                    severity=NotificationSeverity.WARNING.value,
                    booking_id=booking.id,
                    send_email=True,
                )
            ]

        transition(booking, BookingStatus.PENDING)
        booking.payment_status = PaymentStatus.UNPAID.value
        price_note = ""
        if decision.apply_new_price:
            booking.total_price = decision.recomputed
            booking.quote_breakdown = breakdown.to_dict()
            price_note = (
                f" The price has been adjusted to ${decision.recomputed:.2f} "
                f"(was ${decision.original:.2f})."
            )
        if decision.record_original:
            booking.original_price = decision.original
        return [
            UserNotification(
                user_id=booking.customer_id,
                title="Address Verified - Complete Your Booking",
                message=(
                    f"Your address has been verified!{price_note} "
                    "Your booking is now open to contractors."
                ),
                severity=NotificationSeverity.SUCCESS.value,
                booking_id=booking.id,
                send_email=True,
            )
        ]

    def _get_owned_price_change(self, principal: Principal, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id, for_update=True)
        if not booking or not booking.is_owned_by(principal.user_id):
            raise NotFoundException("Booking not found")
        if booking.status != BookingStatus.PRICE_CHANGE_PENDING:
            raise ValidationException(
                "This booking has no price change awaiting approval",
                code="NO_PRICE_CHANGE_PENDING",
            )
        return booking

    @BaseService.measure_operation("approve_price_change")
    def approve_price_change(self, principal: Principal, booking_id: str) -> OperationResult:
        """Customer accepts the verified price; the booking opens to contractors."""
        with self.transaction():
            booking = self._get_owned_price_change(principal, booking_id)
            transition(booking, BookingStatus.PENDING)
            booking.payment_status = PaymentStatus.UNPAID.value
            effects: List[SideEffect] = [
                AdminAlert(
                    title="Price Change Approved",
                    message=(
                        "Customer approved the updated price of "
                        f"${booking.total_price_decimal:.2f} "
                        "for their booking. The booking is now open to contractors."
                    ),
                    severity=NotificationSeverity.INFO.value,
                    booking_id=booking.id,
                )
            ]
            self.publish(effects, scope=f"approve_price_change:{booking.id}")

        return OperationResult(
            message="Price change approved", booking_id=booking_id, side_effects=effects
        )

    @BaseService.measure_operation("decline_price_change")
    def decline_price_change(
        self, principal: Principal, booking_id: str, now: Optional[datetime] = None
    ) -> OperationResult:
        """Customer refuses the verified price; the booking is cancelled."""
        with self.transaction():
            booking = self._get_owned_price_change(principal, booking_id)
            transition(booking, BookingStatus.CANCELLED)
            booking.cancelled_at = self.now(now)
            booking.admin_notes = "Cancelled: customer declined price change"
            effects: List[SideEffect] = [
                UserNotification(
                    user_id=booking.customer_id,
                    title="Booking Cancelled",
                    message="Your booking was cancelled as requested. You have not been charged.",
                    booking_id=booking.id,
                )
            ]
            self.publish(effects, scope=f"decline_price_change:{booking.id}")

        return OperationResult(
            message="Booking cancelled", booking_id=booking_id, side_effects=effects
        )
