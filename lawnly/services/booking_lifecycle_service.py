# lawnly/services/booking_lifecycle_service.py
"""
Booking creation and cancellation.

Creation prices the job from the address as it stands: a verified address
opens the booking to contractors straight away, an unverified one parks it
in ``pending_address_verification`` until an admin has measured the lawn.
"""

from datetime import date, datetime
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.enums import NotificationSeverity, RoleName
from ..core.exceptions import ForbiddenException, NotFoundException, ValidationException
from ..domain.booking_state_machine import transition
from ..domain.pricing_calculator import is_weekend, to_cents
from ..events.side_effects import AdminAlert, OperationResult, SideEffect, UserNotification
from ..models.address import Address, AddressStatus
from ..models.booking import (
    Booking,
    BookingStatus,
    GrassLength,
    PaymentStatus,
    PayoutStatus,
    TimeSlot,
)
from ..principal import Principal
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .dispute_service import DisputeService
from .pricing_service import PricingService
from .stripe_service import StripeService

logger = logging.getLogger(__name__)


class BookingLifecycleService(BaseService):
    """Entry and exit points of the booking lifecycle."""

    def __init__(
        self,
        db: Session,
        pricing_service: Optional[PricingService] = None,
        payment_gateway: Optional[StripeService] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.address_repository = RepositoryFactory.create_base_repository(db, Address)
        self.contractor_repository = RepositoryFactory.create_contractor_repository(db)
        self.pricing_service = pricing_service or PricingService(db)
        self._payment_gateway = payment_gateway

    @property
    def payment_gateway(self) -> StripeService:
        if self._payment_gateway is None:
            self._payment_gateway = StripeService(self.db)
        return self._payment_gateway

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        principal: Principal,
        *,
        address_id: str,
        scheduled_date: date,
        time_slot: str,
        grass_length: str = GrassLength.SHORT.value,
        clippings_removal: bool = False,
        is_public_holiday: bool = False,
        preferred_contractor_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Booking:
        """
        Create a booking at the quoted price.

        Raises:
            ValidationException: bad slot or date, rejected address
            NotFoundException: address or preferred contractor unknown
        """
        principal.require_role(RoleName.CUSTOMER)
        try:
            slot = TimeSlot(time_slot)
        except ValueError:
            raise ValidationException(f"Unknown time slot '{time_slot}'", code="INVALID_TIME_SLOT")
        if scheduled_date < (today or self.now().date()):
            raise ValidationException("Scheduled date cannot be in the past", code="DATE_IN_PAST")

        with self.transaction():
            address = self.address_repository.get_by_id(address_id)
            if not address or address.user_id != principal.user_id:
                raise NotFoundException("Address not found")
            if address.status == AddressStatus.REJECTED:
                raise ValidationException(
                    "This address was rejected and cannot be booked", code="ADDRESS_REJECTED"
                )
            if preferred_contractor_id and not self.contractor_repository.get_by_id(
                preferred_contractor_id
            ):
                raise NotFoundException("Preferred contractor not found")

            breakdown = self.pricing_service.quote_for(
                address,
                service_date=scheduled_date,
                grass_length=grass_length,
                clippings_removal=clippings_removal,
                is_public_holiday=is_public_holiday,
            )
            status = (
                BookingStatus.PENDING
                if address.is_verified
                else BookingStatus.PENDING_ADDRESS_VERIFICATION
            )
            booking = self.booking_repository.create(
                customer_id=principal.user_id,
                address_id=address.id,
                preferred_contractor_id=preferred_contractor_id,
                scheduled_date=scheduled_date,
                time_slot=slot.value,
                is_weekend=is_weekend(scheduled_date),
                is_public_holiday=is_public_holiday,
                grass_length=grass_length,
                clippings_removal=clippings_removal,
                total_price=breakdown.total,
                quote_breakdown=breakdown.to_dict(),
                status=status.value,
                payment_status=PaymentStatus.UNPAID.value,
            )

        self.log_operation("booking_created", booking_id=booking.id, status=booking.status)
        return booking

    def _check_can_cancel(self, principal: Principal, booking: Booking) -> None:
        if principal.is_admin or booking.is_owned_by(principal.user_id):
            return
        if principal.is_contractor and booking.contractor_id:
            contractor = self.contractor_repository.get_by_user_id(principal.user_id)
            if contractor and contractor.id == booking.contractor_id:
                return
        raise ForbiddenException("You cannot cancel this booking")

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        principal: Principal,
        booking_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """
        Cancel a booking along a permitted edge, refunding any charge in full.

        The customer, the assigned contractor or an admin may cancel. A job
        with reported issues is only cancelled by an admin, as a full refund
        on its issue report.
        """
        current_time = self.now(now)
        with self.transaction():
            booking = self.booking_repository.get_by_id(booking_id, for_update=True)
            if not booking:
                raise NotFoundException("Booking not found")
            self._check_can_cancel(principal, booking)
            under_review = booking.status == BookingStatus.COMPLETED_WITH_ISSUES
            if under_review and not principal.is_admin:
                raise ForbiddenException(
                    "This job has reported issues awaiting admin review",
                    code="ADMIN_REVIEW_REQUIRED",
                )
            if not under_review:
                refunded = self._cancel_and_refund(principal, booking, reason, current_time)
                effects = self._cancellation_effects(principal, booking, refunded)
                self.publish(effects, scope=f"cancel_booking:{booking.id}")

        if under_review:
            return self._cancel_through_issue_review(principal, booking_id, reason, current_time)

        return OperationResult(
            message="Booking cancelled",
            booking_id=booking_id,
            data={"refunded": refunded},
            side_effects=effects,
        )

    def _cancel_and_refund(
        self, principal: Principal, booking: Booking, reason: Optional[str], now: datetime
    ) -> bool:
        transition(booking, BookingStatus.CANCELLED)
        booking.cancelled_at = now
        booking.admin_notes = f"Cancelled by {principal.role.value}" + (
            f": {reason}" if reason else ""
        )
        if booking.payment_status != PaymentStatus.PAID or not booking.payment_intent_id:
            return False
        self.payment_gateway.refund_payment(
            payment_intent_id=booking.payment_intent_id,
            amount_cents=to_cents(booking.total_price_decimal),
            idempotency_key=f"cancel-refund-{booking.id}",
        )
        booking.payment_status = PaymentStatus.REFUNDED.value
        if booking.payout_status:
            booking.payout_status = PayoutStatus.REFUNDED.value
        return True

    def _cancel_through_issue_review(
        self, principal: Principal, booking_id: str, reason: Optional[str], now: datetime
    ) -> OperationResult:
        disputes = DisputeService(self.db, payment_gateway=self.payment_gateway)
        result = disputes.resolve_job_issues(
            principal,
            booking_id,
            "full_refund",
            admin_notes=f"Cancelled by admin: {reason}" if reason else "Cancelled by admin",
            now=now,
        )
        result.message = "Booking cancelled"
        result.data["refunded"] = result.data["refund_cents"] > 0
        return result

    def _cancellation_effects(
        self, principal: Principal, booking: Booking, refunded: bool
    ) -> List[SideEffect]:
        refund_note = " Your payment has been refunded in full." if refunded else ""
        effects: List[SideEffect] = []
        if not booking.is_owned_by(principal.user_id):
            effects.append(
                UserNotification(
                    user_id=booking.customer_id,
                    title="Booking Cancelled",
                    message=(
                        f"Your booking for {booking.scheduled_date} has been cancelled."
                        f"{refund_note}"
                    ),
                    severity=NotificationSeverity.WARNING.value,
                    booking_id=booking.id,
                    send_email=True,
                )
            )
        if booking.contractor_id and not principal.is_contractor:
            contractor = self.contractor_repository.get_by_id(booking.contractor_id)
            if contractor:
                effects.append(
                    UserNotification(
                        user_id=contractor.user_id,
                        title="Job Cancelled",
                        message=f"The job on {booking.scheduled_date} has been cancelled.",
                        severity=NotificationSeverity.WARNING.value,
                        booking_id=booking.id,
                    )
                )
        if principal.is_contractor:
            effects.append(
                AdminAlert(
                    title="Contractor Cancelled Job",
                    message=(
                        "Contractor cancelled a confirmed job scheduled for "
                        f"{booking.scheduled_date}."
                    ),
                    booking_id=booking.id,
                )
            )
        return effects
