# lawnly/services/acceptance_service.py
"""
Contractor Acceptance Controller.

Accepting a job assigns it and charges the customer as one unit of work:

1. Admission: the contractor can work, has a payout account, and is
   inside their tier's concurrency and job-value limits.
2. Claim: a conditional UPDATE moves the booking ``pending -> confirmed``
   only if it is still unassigned. A second contractor racing for the same
   job updates zero rows and gets a conflict.
3. Charge: the customer's saved card is charged while the claim is still
   uncommitted. A decline rolls the claim back so the job returns to the
   pool untouched, and the customer is told to fix their card.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session
import ulid

from ..core.config import settings
from ..core.enums import NotificationSeverity, RoleName
from ..core.exceptions import (
    ConflictException,
    NotFoundException,
    PaymentDeclinedException,
    PreconditionFailedException,
)
from ..events.side_effects import OperationResult, SideEffect, UserNotification
from ..models.alternative_suggestion import SuggestionStatus
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.contractor import Contractor, ContractorTier
from ..models.user import User
from ..principal import Principal
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .payout_service import contractor_earnings
from .stripe_service import ChargeResult, StripeService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierLimits:
    max_active_jobs: Optional[int]
    max_job_value: Optional[Decimal]


def tier_limits(tier: str) -> TierLimits:
    if tier == ContractorTier.PROBATION:
        return TierLimits(
            max_active_jobs=settings.probation_max_active_jobs,
            max_job_value=Decimal(str(settings.probation_max_job_value)),
        )
    if tier == ContractorTier.STANDARD:
        return TierLimits(max_active_jobs=settings.standard_max_active_jobs, max_job_value=None)
    return TierLimits(max_active_jobs=None, max_job_value=None)


class AcceptanceService(BaseService):
    """Tier-gated job acceptance with payment captured at assignment."""

    def __init__(self, db: Session, payment_gateway: Optional[StripeService] = None):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.contractor_repository = RepositoryFactory.create_contractor_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.suggestion_repository = RepositoryFactory.create_alternative_suggestion_repository(db)
        self._payment_gateway = payment_gateway

    @property
    def payment_gateway(self) -> StripeService:
        if self._payment_gateway is None:
            self._payment_gateway = StripeService(self.db)
        return self._payment_gateway

    # ------------------------------------------------------------------ checks
    def get_contractor_for(self, principal: Principal) -> Contractor:
        principal.require_role(RoleName.CONTRACTOR)
        contractor = self.contractor_repository.get_by_user_id(principal.user_id)
        if not contractor:
            raise NotFoundException("Contractor profile not found")
        return contractor

    def check_can_work(self, contractor: Contractor) -> None:
        if not contractor.can_work:
            raise PreconditionFailedException(
                "Your contractor account is not active. Please contact support.",
                code="CONTRACTOR_INACTIVE",
                details={"suspension_status": contractor.suspension_status},
            )

    def check_admission(self, contractor: Contractor, booking: Booking) -> None:
        """
        Raise PreconditionFailedException unless ``contractor`` may take ``booking``.

        Nothing is written; a rejected contractor leaves no trace on the booking.
        """
        self.check_can_work(contractor)
        if not contractor.payouts_enabled:
            raise PreconditionFailedException(
                "Please complete your payout account setup before accepting jobs.",
                code="PAYOUTS_NOT_ENABLED",
            )

        limits = tier_limits(contractor.tier)
        if limits.max_active_jobs is not None:
            active = self.booking_repository.count_active_jobs(contractor.id)
            if active >= limits.max_active_jobs:
                raise PreconditionFailedException(
                    f"You've reached your maximum of {limits.max_active_jobs} concurrent jobs "
                    "for your tier. Complete existing jobs to accept new ones.",
                    code="TIER_JOB_LIMIT",
                    details={"active_jobs": active, "tier": contractor.tier},
                )
        if limits.max_job_value is not None and booking.total_price_decimal > limits.max_job_value:
            raise PreconditionFailedException(
                f"As a new contractor, you cannot accept jobs over ${limits.max_job_value:.0f}. "
                "Complete more jobs to unlock higher-value work.",
                code="TIER_VALUE_LIMIT",
                details={"total_price": float(booking.total_price_decimal)},
            )

    def _load_payable_customer(self, booking: Booking) -> User:
        customer = self.user_repository.get_by_id(booking.customer_id)
        if not customer or not customer.stripe_customer_id or not customer.stripe_payment_method_id:
            raise PreconditionFailedException(
                "The customer has not added a payment method yet.",
                code="NO_PAYMENT_METHOD",
            )
        if booking.payment_status == PaymentStatus.PAID:
            raise ConflictException("This booking has already been paid", code="ALREADY_PAID")
        return customer

    # ------------------------------------------------------------- acceptance
    @BaseService.measure_operation("accept_job")
    def accept_job(
        self, principal: Principal, booking_id: str, now: Optional[datetime] = None
    ) -> OperationResult:
        """
        Assign a pending booking to the calling contractor and charge the customer.

        Raises:
            ConflictException: the job was taken or is no longer pending
            PreconditionFailedException: admission limits or payout setup
            PaymentDeclinedException: card declined; the booking is back in the pool
            PaymentProcessorException: processor error; the booking is unchanged
        """
        contractor = self.get_contractor_for(principal)
        current_time = self.now(now)
        return self.assign_and_charge(
            booking_id,
            contractor,
            now=current_time,
            scope="accept_job",
            extra_work=lambda booking: self._close_open_suggestions(
                booking, contractor, current_time
            ),
        )

    def _close_open_suggestions(
        self, booking: Booking, contractor: Contractor, now: datetime
    ) -> List[SideEffect]:
        """Decline alternative times still pending once the job is taken as posted."""
        pending = [
            s
            for s in self.suggestion_repository.find_for_booking(booking.id)
            if s.status == SuggestionStatus.PENDING
        ]
        if not pending:
            return []
        suggesters = {s.contractor_id for s in pending} - {contractor.id}
        self.suggestion_repository.decline_pending_siblings(booking.id, "", now)

        effects: List[SideEffect] = []
        for contractor_id in sorted(suggesters):
            suggester = self.contractor_repository.get_by_id(contractor_id)
            if suggester:
                effects.append(
                    UserNotification(
                        user_id=suggester.user_id,
                        title="Alternative Time Declined",
                        message="The job you suggested a new time for has been accepted.",
                        booking_id=booking.id,
                    )
                )
        return effects

    def assign_and_charge(
        self,
        booking_id: str,
        contractor: Contractor,
        *,
        now: datetime,
        scope: str,
        scheduled_date: Optional[date] = None,
        time_slot: Optional[str] = None,
        extra_work: Optional[Callable[[Booking], List[SideEffect]]] = None,
    ) -> OperationResult:
        """
        Claim, charge and confirm in one transaction.

        ``scheduled_date``/``time_slot`` move the booking when the assignment
        comes from an accepted alternative time. ``extra_work`` runs inside
        the transaction after the charge succeeds and may add side effects.
        """
        charges: List[ChargeResult] = []
        customer_id: Optional[str] = None
        try:
            with self.transaction():
                booking = self.booking_repository.get_by_id(booking_id, for_update=True)
                if not booking:
                    raise NotFoundException("Booking not found")
                customer_id = booking.customer_id
                if booking.status != BookingStatus.PENDING or booking.contractor_id:
                    raise ConflictException(
                        "This job is no longer available", code="JOB_UNAVAILABLE"
                    )
                self.check_admission(contractor, booking)
                customer = self._load_payable_customer(booking)

                if not self.booking_repository.claim_for_contractor(booking.id, contractor.id, now):
                    raise ConflictException(
                        "This job was just accepted by another contractor", code="JOB_UNAVAILABLE"
                    )
                if scheduled_date is not None:
                    booking.scheduled_date = scheduled_date
                if time_slot is not None:
                    booking.time_slot = time_slot

                charge = self.payment_gateway.charge_booking(
                    booking_id=booking.id,
                    customer_id=customer.stripe_customer_id,
                    payment_method_id=customer.stripe_payment_method_id,
                    amount=booking.total_price_decimal,
                    idempotency_key=f"charge-{booking.id}-{contractor.id}-{ulid.ULID()}",
                )
                charges.append(charge)
                booking.payment_status = PaymentStatus.PAID.value
                booking.payment_intent_id = charge.payment_intent_id
                booking.charged_at = now

                effects = self._confirmation_effects(booking, contractor)
                if extra_work is not None:
                    effects.extend(extra_work(booking))
                self.publish(effects, scope=f"{scope}:{booking.id}")
        except PaymentDeclinedException:
            if customer_id is not None:
                self._notify_declined(booking_id, customer_id, now)
            self.logger.info(f"Card declined; booking {booking_id} returned to the pool")
            raise
        except Exception:
            if charges:
                self._refund_orphaned_charge(booking_id, charges[0])
            raise

        self.log_operation(
            "job_accepted",
            booking_id=booking_id,
            contractor_id=contractor.id,
            payment_intent_id=charges[0].payment_intent_id,
        )
        return OperationResult(
            message="Job accepted and payment processed",
            booking_id=booking_id,
            data={
                "payment_intent_id": charges[0].payment_intent_id,
                "amount_cents": charges[0].amount_cents,
                "contractor_earnings": float(contractor_earnings(booking.total_price_decimal)),
            },
            side_effects=effects,
        )

    def _confirmation_effects(self, booking: Booking, contractor: Contractor) -> List[SideEffect]:
        total = booking.total_price_decimal
        contractor_name = contractor.business_name or "Your contractor"
        return [
            UserNotification(
                user_id=booking.customer_id,
                title="Booking Confirmed!",
                message=(
                    f"Great news! {contractor_name} has accepted your job. Payment of ${total:.2f} "
                    f"has been processed. They will arrive on {booking.scheduled_date:%A, %d %B}."
                ),
                severity=NotificationSeverity.SUCCESS.value,
                booking_id=booking.id,
                send_email=True,
            ),
            UserNotification(
                user_id=contractor.user_id,
                title="Job Accepted!",
                message=(
                    f"You've accepted a job on {booking.scheduled_date:%A, %d %B}. Payment of "
                    f"${total:.2f} is secured. Your payout will be "
                    f"${contractor_earnings(total):.2f} after the platform fee."
                ),
                severity=NotificationSeverity.SUCCESS.value,
                booking_id=booking.id,
            ),
        ]

    def _notify_declined(self, booking_id: str, customer_id: str, now: datetime) -> None:
        effects: List[SideEffect] = [
            UserNotification(
                user_id=customer_id,
                title="Payment Failed",
                message=(
                    "A contractor tried to accept your job but your card was declined. "
                    "Please update your payment method. Your job has been returned to the pool."
                ),
                severity=NotificationSeverity.ERROR.value,
                booking_id=booking_id,
                send_email=True,
            )
        ]
        with self.transaction():
            self.publish(effects, scope=f"payment_declined:{booking_id}:{int(now.timestamp())}")

    def _refund_orphaned_charge(self, booking_id: str, charge: ChargeResult) -> None:
        """The charge went through but the assignment could not be saved."""
        self.logger.error(
            f"Assignment for booking {booking_id} failed after charge "
            f"{charge.payment_intent_id}; refunding"
        )
        self.payment_gateway.refund_payment(
            payment_intent_id=charge.payment_intent_id,
            idempotency_key=f"orphaned-charge-{charge.payment_intent_id}",
            reason="duplicate",
        )
