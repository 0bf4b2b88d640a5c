# lawnly/services/payout_service.py
"""
Payout Settlement Engine.

Releases the contractor's share of a booking once the customer approves,
the review window lapses, or an admin settles a dispute. Release is
guarded on ``payout_status == pending`` so duplicate triggers are no-ops,
and the Stripe transfer carries a per-booking idempotency key.

A failed transfer never marks the payout released: the booking stays
payable and admins are alerted with the amount, booking and account.
"""

from datetime import datetime
from decimal import Decimal
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import NotificationSeverity
from ..core.exceptions import (
    ForbiddenException,
    NotFoundException,
    PreconditionFailedException,
    ServiceException,
    TransferFailedException,
    ValidationException,
)
from ..domain.booking_state_machine import transition
from ..domain.pricing_calculator import round_money, to_cents
from ..events.side_effects import AdminAlert, OperationResult, SideEffect, UserNotification
from ..models.booking import Booking, BookingStatus, PayoutStatus
from ..models.contractor import Contractor
from ..principal import Principal
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .stripe_service import StripeService, TransferResult

logger = logging.getLogger(__name__)

RELEASE_TRIGGERS = ("approval", "auto_release", "admin")


def contractor_earnings(total_price: Decimal) -> Decimal:
    """Contractor's share of a booking total; the platform keeps the rest."""
    return round_money(Decimal(str(total_price)) * Decimal(str(settings.contractor_share_rate)))


def contractor_earnings_cents(total_price: Decimal) -> int:
    return to_cents(Decimal(str(total_price)) * Decimal(str(settings.contractor_share_rate)))


class PayoutService(BaseService):
    """Moves contractor earnings out through Stripe transfers."""

    def __init__(self, db: Session, payment_gateway: Optional[StripeService] = None):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.contractor_repository = RepositoryFactory.create_contractor_repository(db)
        self._payment_gateway = payment_gateway

    @property
    def payment_gateway(self) -> StripeService:
        if self._payment_gateway is None:
            self._payment_gateway = StripeService(self.db)
        return self._payment_gateway

    def transfer_payout(
        self,
        booking: Booking,
        contractor: Contractor,
        amount_cents: int,
        *,
        idempotency_key: str,
    ) -> TransferResult:
        """
        Send ``amount_cents`` to the contractor for ``booking``.

        Raises:
            PreconditionFailedException: contractor has no payout account
            ValidationException: non-positive amount
            TransferFailedException: Stripe refused the transfer
        """
        if not contractor.stripe_account_id:
            raise PreconditionFailedException(
                "Contractor has no payout account", code="NO_PAYOUT_ACCOUNT"
            )
        if amount_cents <= 0:
            raise ValidationException("Payout amount must be positive", code="INVALID_AMOUNT")
        try:
            return self.payment_gateway.transfer_to_contractor(
                account_id=contractor.stripe_account_id,
                amount_cents=amount_cents,
                booking_id=booking.id,
                idempotency_key=idempotency_key,
                metadata={"contractor_id": contractor.id},
            )
        except ServiceException as e:
            raise TransferFailedException(booking.id, amount_cents, e.message)

    def report_transfer_failure(
        self, error: TransferFailedException, account_id: Optional[str], now: datetime
    ) -> None:
        """Queue the admin alert in its own transaction after the payout rolled back."""
        booking_id = error.details.get("booking_id")
        amount_cents = int(error.details.get("amount_cents") or 0)
        alert = AdminAlert(
            title="⚠️ Payout Failed",
            message=(
                f"Transfer of ${Decimal(amount_cents) / 100:.2f} for booking {booking_id} "
                f"to account {account_id or 'unknown'} failed: {error.message}. "
                "The payout is still pending and must be retried."
            ),
            severity=NotificationSeverity.ERROR.value,
            booking_id=booking_id,
            details={
                "booking_id": booking_id,
                "amount_cents": amount_cents,
                "contractor_account": account_id,
            },
        )
        with self.transaction():
            self.publish([alert], scope=f"payout_failed:{booking_id}:{int(now.timestamp())}")
        self.logger.error(f"Payout failed for booking {booking_id}: {error.message}")

    @BaseService.measure_operation("release_payout")
    def release_payout(
        self,
        principal: Principal,
        booking_id: str,
        *,
        trigger: str = "approval",
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """
        Release the contractor's earnings for a booking.

        Safe to call repeatedly: anything other than a pending payout returns
        success without moving money.

        Raises:
            TransferFailedException: the transfer failed; payout stays pending
        """
        if trigger not in RELEASE_TRIGGERS:
            raise ValidationException(
                f"Unknown release trigger '{trigger}'", code="INVALID_TRIGGER"
            )
        current_time = self.now(now)
        account_id: Optional[str] = None
        try:
            with self.transaction():
                booking = self.booking_repository.get_by_id(booking_id, for_update=True)
                if not booking:
                    raise NotFoundException("Booking not found")
                if not principal.is_admin and not booking.is_owned_by(principal.user_id):
                    raise ForbiddenException("You cannot release payment for this booking")

                if booking.payout_status != PayoutStatus.PENDING:
                    self.logger.info(
                        f"Payout for booking {booking_id} already {booking.payout_status}; skipping"
                    )
                    return OperationResult(
                        message="Payout already processed",
                        booking_id=booking_id,
                        data={"payout_status": booking.payout_status, "transferred": False},
                    )

                contractor = (
                    self.contractor_repository.get_by_id(booking.contractor_id)
                    if booking.contractor_id
                    else None
                )
                if not contractor:
                    raise PreconditionFailedException(
                        "Booking has no assigned contractor", code="NO_CONTRACTOR"
                    )
                account_id = contractor.stripe_account_id

                amount_cents = contractor_earnings_cents(booking.total_price_decimal)
                transfer = self.transfer_payout(
                    booking,
                    contractor,
                    amount_cents,
                    idempotency_key=f"payout-{booking.id}",
                )
                booking.payout_status = PayoutStatus.RELEASED.value
                booking.payout_released_at = current_time
                booking.stripe_payout_id = transfer.transfer_id
                if booking.status == BookingStatus.COMPLETED_PENDING_VERIFICATION:
                    transition(booking, BookingStatus.COMPLETED)

                effects = self._release_effects(booking, contractor, amount_cents, trigger)
                self.publish(effects, scope=f"release_payout:{booking.id}")
        except TransferFailedException as e:
            self.report_transfer_failure(e, account_id, current_time)
            raise

        self.log_operation(
            "payout_released", booking_id=booking_id, amount_cents=amount_cents, trigger=trigger
        )
        return OperationResult(
            message="Payout released",
            booking_id=booking_id,
            data={
                "transfer_id": transfer.transfer_id,
                "amount_cents": amount_cents,
                "transferred": True,
            },
            side_effects=effects,
        )

    def _release_effects(
        self, booking: Booking, contractor: Contractor, amount_cents: int, trigger: str
    ) -> List[SideEffect]:
        amount = Decimal(amount_cents) / 100
        effects: List[SideEffect] = [
            UserNotification(
                user_id=contractor.user_id,
                title="Payment Released!",
                message=(
                    f"${amount:.2f} for the job on {booking.scheduled_date} has been released "
                    "to your account."
                ),
                severity=NotificationSeverity.SUCCESS.value,
                booking_id=booking.id,
                send_email=True,
            )
        ]
        if trigger == "auto_release":
            effects.append(
                UserNotification(
                    user_id=booking.customer_id,
                    title="Payment Auto-Released",
                    message=(
                        f"Payment of ${booking.total_price_decimal:.2f} for your lawn service on "
                        f"{booking.scheduled_date} has been automatically released to "
                        f"{contractor.business_name or 'your contractor'}. You can still report an "
                        f"issue within {settings.post_payment_dispute_days} days."
                    ),
                    booking_id=booking.id,
                )
            )
        return effects
