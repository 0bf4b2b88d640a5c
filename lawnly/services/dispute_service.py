# lawnly/services/dispute_service.py
"""
Dispute Resolution Engine.

Disputes reach an admin from two directions: a customer complaint filed
during the review window (or within a week of a released payout), and a
contractor's own issue report at completion. Both are settled with the
same vocabulary:

- full_refund: the customer gets the whole charge back, the contractor nothing
- partial_refund: the customer gets ``pct`` of the charge, the contractor the rest
- no_refund: the contractor is paid their normal share

When the contractor was already paid before the complaint (post-payment
dispute) the refund is funded by the platform and nothing is clawed back.

Resolution is claimed with a conditional UPDATE so a dispute can only be
settled once; Stripe refunds and transfers carry per-dispute idempotency
keys so a retried resolution never moves money twice.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import NotificationSeverity, RoleName
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    PreconditionFailedException,
    TransferFailedException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc
from ..domain.booking_state_machine import assert_transition, transition
from ..domain.pricing_calculator import to_cents
from ..events.side_effects import AdminAlert, OperationResult, SideEffect, UserNotification
from ..models.booking import Booking, BookingStatus, PaymentStatus, PayoutStatus
from ..models.contractor import Contractor
from ..models.dispute import (
    Dispute,
    DisputeRaiser,
    DisputeReason,
    DisputeResolution,
    DisputeStatus,
    RefundFunding,
)
from ..principal import Principal
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .payout_service import PayoutService, contractor_earnings_cents
from .stripe_service import StripeService

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 20
MIN_PARTIAL_PERCENTAGE = 5
MAX_PARTIAL_PERCENTAGE = 100
DEFAULT_PARTIAL_PERCENTAGE = 50

SETTLEABLE_STATUSES = frozenset(
    {
        BookingStatus.DISPUTED.value,
        BookingStatus.POST_PAYMENT_DISPUTE.value,
        BookingStatus.COMPLETED_WITH_ISSUES.value,
    }
)


@dataclass(frozen=True)
class SettlementPlan:
    """Money movements for one resolution, in cents."""

    resolution: DisputeResolution
    refund_percentage: int
    refund_cents: int
    contractor_cents: int
    funded_by: Optional[RefundFunding]


def plan_settlement(
    resolution: DisputeResolution,
    total_price: Decimal,
    *,
    refund_percentage: Optional[int],
    payout_already_released: bool,
    is_post_payment: bool,
) -> SettlementPlan:
    """Work out who gets what for a resolution without touching anything."""
    total_cents = to_cents(total_price)
    if resolution == DisputeResolution.FULL_REFUND:
        pct = 100
        refund_cents = total_cents
        contractor_cents = 0
    elif resolution == DisputeResolution.PARTIAL_REFUND:
        pct = DEFAULT_PARTIAL_PERCENTAGE if refund_percentage is None else int(refund_percentage)
        if not MIN_PARTIAL_PERCENTAGE <= pct <= MAX_PARTIAL_PERCENTAGE:
            raise ValidationException(
                f"Refund percentage must be between {MIN_PARTIAL_PERCENTAGE} and "
                f"{MAX_PARTIAL_PERCENTAGE}",
                code="INVALID_REFUND_PERCENTAGE",
            )
        refund_cents = to_cents(Decimal(str(total_price)) * Decimal(pct) / 100)
        contractor_cents = total_cents - refund_cents
    else:
        pct = 0
        refund_cents = 0
        contractor_cents = contractor_earnings_cents(total_price)

    if payout_already_released:
        contractor_cents = 0

    funded_by: Optional[RefundFunding] = None
    if refund_cents > 0:
        funded_by = RefundFunding.PLATFORM if is_post_payment else RefundFunding.PAYMENT

    return SettlementPlan(
        resolution=resolution,
        refund_percentage=pct,
        refund_cents=refund_cents,
        contractor_cents=contractor_cents,
        funded_by=funded_by,
    )


class DisputeService(BaseService):
    """Filing, review and adjudication of booking disputes."""

    def __init__(
        self,
        db: Session,
        payout_service: Optional[PayoutService] = None,
        payment_gateway: Optional[StripeService] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.contractor_repository = RepositoryFactory.create_contractor_repository(db)
        self.dispute_repository = RepositoryFactory.create_dispute_repository(db)
        self.payout_service = payout_service or PayoutService(db, payment_gateway)

    @property
    def payment_gateway(self) -> StripeService:
        return self.payout_service.payment_gateway

    # ------------------------------------------------------------------ filing
    @BaseService.measure_operation("file_dispute")
    def file_dispute(
        self,
        principal: Principal,
        booking_id: str,
        *,
        description: str,
        reason: str,
        suggested_refund_amount: Optional[Decimal] = None,
        evidence_photos: Optional[List[str]] = None,
        now: Optional[datetime] = None,
    ) -> Dispute:
        """
        Customer complaint about a completed job.

        During the review window the payout is frozen. After the payout went
        out the booking moves to ``post_payment_dispute`` and any refund will
        be platform funded.
        """
        principal.require_role(RoleName.CUSTOMER)
        current_time = self.now(now)
        text = (description or "").strip()
        if len(text) < MIN_DESCRIPTION_LENGTH:
            raise ValidationException(
                f"Please describe the problem in at least {MIN_DESCRIPTION_LENGTH} characters",
                code="DESCRIPTION_TOO_SHORT",
            )
        try:
            dispute_reason = DisputeReason(reason)
        except ValueError:
            raise ValidationException(f"Unknown dispute reason '{reason}'", code="INVALID_REASON")

        with self.transaction():
            booking = self.booking_repository.get_by_id(booking_id, for_update=True)
            if not booking or not booking.is_owned_by(principal.user_id):
                raise NotFoundException("Booking not found")
            if suggested_refund_amount is not None:
                amount = Decimal(str(suggested_refund_amount))
                if amount < 0 or amount > booking.total_price_decimal:
                    raise ValidationException(
                        "Suggested refund must be between 0 and the booking total",
                        code="INVALID_SUGGESTED_REFUND",
                    )
            if self.dispute_repository.get_open_for_booking(booking.id):
                raise ConflictException(
                    "A dispute is already open for this booking", code="DISPUTE_EXISTS"
                )

            is_post_payment = self._open_dispute_on_booking(booking, current_time)
            dispute = self.dispute_repository.create(
                booking_id=booking.id,
                raised_by=principal.user_id,
                raised_by_role=DisputeRaiser.CUSTOMER.value,
                description=text,
                dispute_reason=dispute_reason.value,
                suggested_refund_amount=suggested_refund_amount,
                customer_evidence_photos=list(evidence_photos or []),
                contractor_evidence_photos=[],
                is_post_payment=is_post_payment,
                status=DisputeStatus.PENDING.value,
            )
            self.publish(
                self._filing_effects(booking, dispute), scope=f"file_dispute:{dispute.id}"
            )

        self.log_operation(
            "dispute_filed",
            booking_id=booking_id,
            dispute_id=dispute.id,
            post_payment=is_post_payment,
        )
        return dispute

    def _open_dispute_on_booking(self, booking: Booking, now: datetime) -> bool:
        """Move the booking into its dispute state; returns True for post-payment disputes."""
        if booking.status == BookingStatus.COMPLETED_PENDING_VERIFICATION:
            transition(booking, BookingStatus.DISPUTED)
            booking.payout_status = PayoutStatus.FROZEN.value
            return False

        if (
            booking.status == BookingStatus.COMPLETED
            and booking.payout_status == PayoutStatus.RELEASED
        ):
            completed_at = ensure_utc(booking.completed_at)
            window = timedelta(days=settings.post_payment_dispute_days)
            if completed_at is None or now > completed_at + window:
                raise ValidationException(
                    f"Disputes must be filed within {settings.post_payment_dispute_days} days "
                    "of completion",
                    code="DISPUTE_WINDOW_CLOSED",
                )
            transition(booking, BookingStatus.POST_PAYMENT_DISPUTE)
            return True

        raise ValidationException(
            "This booking cannot be disputed in its current state",
            code="NOT_DISPUTABLE",
            details={"status": booking.status},
        )

    def _filing_effects(self, booking: Booking, dispute: Dispute) -> List[SideEffect]:
        effects: List[SideEffect] = []
        if dispute.is_post_payment:
            effects.append(
                AdminAlert(
                    title="⚠️ Post-Payment Dispute Filed",
                    message=(
                        f"Customer disputed booking {booking.id} after the contractor was paid "
                        f"({dispute.dispute_reason}). Any refund will be funded by the platform."
                    ),
                    severity=NotificationSeverity.ERROR.value,
                    booking_id=booking.id,
                    details={"dispute_id": dispute.id, "is_post_payment": True},
                )
            )
        else:
            effects.append(
                AdminAlert(
                    title="New Dispute Filed",
                    message=(
                        f"Customer disputed booking {booking.id} ({dispute.dispute_reason}). "
                        "Payout is frozen pending review."
                    ),
                    booking_id=booking.id,
                    details={"dispute_id": dispute.id, "is_post_payment": False},
                )
            )
        effects.append(
            UserNotification(
                user_id=booking.customer_id,
                title="Dispute Submitted",
                message="We've received your dispute and will review it within 2 business days.",
                booking_id=booking.id,
            )
        )
        contractor = (
            self.contractor_repository.get_by_id(booking.contractor_id)
            if booking.contractor_id
            else None
        )
        if contractor:
            effects.append(
                UserNotification(
                    user_id=contractor.user_id,
                    title="Dispute Filed",
                    message=(
                        f"The customer has raised a dispute about the job on "
                        f"{booking.scheduled_date}. Our team will be in touch."
                    ),
                    severity=NotificationSeverity.WARNING.value,
                    booking_id=booking.id,
                )
            )
        return effects

    @BaseService.measure_operation("respond_to_dispute")
    def respond_to_dispute(
        self,
        principal: Principal,
        dispute_id: str,
        response: str,
        evidence_photos: Optional[List[str]] = None,
    ) -> Dispute:
        """The contractor's side of a customer dispute."""
        principal.require_role(RoleName.CONTRACTOR)
        with self.transaction():
            dispute = self._get_dispute(dispute_id)
            contractor = self.contractor_repository.get_by_user_id(principal.user_id)
            if not contractor or dispute.booking.contractor_id != contractor.id:
                raise ForbiddenException("You are not assigned to this booking")
            if dispute.is_resolved:
                raise ConflictException("Dispute already resolved")
            dispute.contractor_response = (response or "").strip() or None
            if evidence_photos:
                dispute.contractor_evidence_photos = list(
                    dispute.contractor_evidence_photos or []
                ) + list(evidence_photos)
        return dispute

    @BaseService.measure_operation("mark_dispute_under_review")
    def mark_under_review(self, principal: Principal, dispute_id: str) -> Dispute:
        principal.require_admin()
        with self.transaction():
            dispute = self._get_dispute(dispute_id)
            transition(dispute, DisputeStatus.UNDER_REVIEW)
        return dispute

    def _get_dispute(self, dispute_id: str) -> Dispute:
        dispute = self.dispute_repository.get_by_id(dispute_id, for_update=True)
        if not dispute:
            raise NotFoundException("Dispute not found")
        return dispute

    # -------------------------------------------------------------- resolution
    @BaseService.measure_operation("resolve_dispute")
    def resolve_dispute(
        self,
        principal: Principal,
        dispute_id: str,
        resolution: str,
        *,
        refund_percentage: Optional[int] = None,
        admin_notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """
        Settle a dispute and its booking in one transaction.

        Raises:
            ConflictException: the dispute is already resolved
            ValidationException: bad resolution or refund percentage
            TransferFailedException: contractor transfer failed; nothing is resolved
        """
        principal.require_admin()
        try:
            outcome = DisputeResolution(resolution)
        except ValueError:
            raise ValidationException(
                f"Unknown resolution '{resolution}'", code="INVALID_RESOLUTION"
            )
        current_time = self.now(now)
        account_id: Optional[str] = None

        try:
            with self.transaction():
                dispute = self._get_dispute(dispute_id)
                if dispute.is_resolved:
                    raise ConflictException("Dispute already resolved", code="DISPUTE_RESOLVED")
                booking = self.booking_repository.get_by_id(dispute.booking_id, for_update=True)
                if not booking:
                    raise NotFoundException("Booking not found")
                contractor = (
                    self.contractor_repository.get_by_id(booking.contractor_id)
                    if booking.contractor_id
                    else None
                )
                account_id = contractor.stripe_account_id if contractor else None

                plan = plan_settlement(
                    outcome,
                    booking.total_price_decimal,
                    refund_percentage=refund_percentage,
                    payout_already_released=booking.payout_status == PayoutStatus.RELEASED,
                    is_post_payment=bool(dispute.is_post_payment),
                )
                settled_status = self._settlement_status(booking, plan)
                claimed = self.dispute_repository.mark_resolved(
                    dispute.id,
                    resolution=outcome.value,
                    refund_percentage=plan.refund_percentage,
                    refund_amount=Decimal(plan.refund_cents) / 100,
                    refund_funded_by=plan.funded_by.value if plan.funded_by else None,
                    resolved_by=principal.user_id,
                    resolved_at=current_time,
                    admin_notes=admin_notes,
                )
                if not claimed:
                    raise ConflictException("Dispute already resolved", code="DISPUTE_RESOLVED")

                self._move_money(dispute, booking, contractor, plan, current_time)
                self._settle_booking(booking, plan, settled_status, current_time)

                effects = self._resolution_effects(booking, dispute, contractor, plan)
                self.publish(effects, scope=f"resolve_dispute:{dispute.id}")
        except TransferFailedException as e:
            self.payout_service.report_transfer_failure(e, account_id, current_time)
            raise

        self.log_operation(
            "dispute_resolved",
            dispute_id=dispute_id,
            resolution=outcome.value,
            refund_cents=plan.refund_cents,
            contractor_cents=plan.contractor_cents,
        )
        return OperationResult(
            message="Dispute resolved",
            booking_id=booking.id,
            data={
                "dispute_id": dispute_id,
                "resolution": outcome.value,
                "refund_percentage": plan.refund_percentage,
                "refund_cents": plan.refund_cents,
                "contractor_cents": plan.contractor_cents,
                "refund_funded_by": plan.funded_by.value if plan.funded_by else None,
            },
            side_effects=effects,
        )

    def _move_money(
        self,
        dispute: Dispute,
        booking: Booking,
        contractor: Optional[Contractor],
        plan: SettlementPlan,
        now: datetime,
    ) -> None:
        if plan.refund_cents > 0:
            if not booking.payment_intent_id:
                raise PreconditionFailedException(
                    "Booking has no captured payment to refund", code="NO_PAYMENT"
                )
            refund = self.payment_gateway.refund_payment(
                payment_intent_id=booking.payment_intent_id,
                amount_cents=plan.refund_cents,
                idempotency_key=f"dispute-refund-{dispute.id}",
            )
            dispute.refund_id = refund.refund_id

        if plan.contractor_cents > 0:
            if not contractor:
                raise PreconditionFailedException(
                    "Booking has no assigned contractor", code="NO_CONTRACTOR"
                )
            transfer = self.payout_service.transfer_payout(
                booking,
                contractor,
                plan.contractor_cents,
                idempotency_key=f"dispute-payout-{dispute.id}",
            )
            booking.stripe_payout_id = transfer.transfer_id
            booking.payout_released_at = now

    @staticmethod
    def _settlement_status(booking: Booking, plan: SettlementPlan) -> BookingStatus:
        """Status the booking settles into; checked before any money moves."""
        if booking.status not in SETTLEABLE_STATUSES:
            raise PreconditionFailedException(
                f"Booking is {booking.status} and cannot be settled by this dispute",
                code="BOOKING_NOT_SETTLEABLE",
                details={"booking_status": booking.status},
            )
        target = (
            BookingStatus.CANCELLED
            if booking.status == BookingStatus.COMPLETED_WITH_ISSUES
            and plan.resolution == DisputeResolution.FULL_REFUND
            else BookingStatus.COMPLETED
        )
        return assert_transition(booking.status, target)

    def _settle_booking(
        self, booking: Booking, plan: SettlementPlan, target: BookingStatus, now: datetime
    ) -> None:
        already_released = booking.payout_status == PayoutStatus.RELEASED
        if plan.resolution == DisputeResolution.FULL_REFUND:
            booking.payment_status = PaymentStatus.REFUNDED.value
            if not already_released:
                booking.payout_status = PayoutStatus.REFUNDED.value
        elif plan.resolution == DisputeResolution.PARTIAL_REFUND:
            booking.payment_status = (
                PaymentStatus.REFUNDED.value
                if plan.refund_percentage >= 100
                else PaymentStatus.PARTIALLY_REFUNDED.value
            )
            if not already_released:
                booking.payout_status = PayoutStatus.PARTIAL_REFUND.value
        else:
            booking.payout_status = PayoutStatus.RELEASED.value

        transition(booking, target)
        if target == BookingStatus.CANCELLED:
            booking.cancelled_at = now

    def _resolution_effects(
        self,
        booking: Booking,
        dispute: Dispute,
        contractor: Optional[Contractor],
        plan: SettlementPlan,
    ) -> List[SideEffect]:
        refund = Decimal(plan.refund_cents) / 100
        payout = Decimal(plan.contractor_cents) / 100
        if plan.resolution == DisputeResolution.FULL_REFUND:
            customer_msg = f"Your dispute was upheld and ${refund:.2f} has been refunded in full."
        elif plan.resolution == DisputeResolution.PARTIAL_REFUND:
            customer_msg = (
                f"Your dispute was partially upheld and ${refund:.2f} "
                f"({plan.refund_percentage}%) has been refunded."
            )
        else:
            customer_msg = "After review, no refund was issued for this job."

        effects: List[SideEffect] = [
            UserNotification(
                user_id=booking.customer_id,
                title="Dispute Resolved",
                message=customer_msg,
                booking_id=booking.id,
                send_email=True,
            )
        ]
        if contractor:
            if plan.contractor_cents > 0:
                contractor_msg = (
                    f"The dispute has been resolved and ${payout:.2f} has been released to you."
                )
            elif booking.payout_status == PayoutStatus.RELEASED:
                contractor_msg = "The dispute has been resolved. Your payout is unaffected."
            else:
                contractor_msg = (
                    "The dispute has been resolved in the customer's favour. "
                    "No payout will be made."
                )
            effects.append(
                UserNotification(
                    user_id=contractor.user_id,
                    title="Dispute Resolved",
                    message=contractor_msg,
                    booking_id=booking.id,
                )
            )
        if plan.funded_by == RefundFunding.PLATFORM:
            effects.append(
                AdminAlert(
                    title="Platform-Funded Refund Issued",
                    message=(
                        f"Refund of ${refund:.2f} on booking {booking.id} was funded by the "
                        "platform; the contractor payout was not clawed back."
                    ),
                    booking_id=booking.id,
                    details={"dispute_id": dispute.id, "refund_cents": plan.refund_cents},
                )
            )
        return effects

    @BaseService.measure_operation("resolve_job_issues")
    def resolve_job_issues(
        self,
        principal: Principal,
        booking_id: str,
        resolution: str,
        *,
        refund_percentage: Optional[int] = None,
        admin_notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """Adjudicate a ``completed_with_issues`` booking through its issue report."""
        principal.require_admin()
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundException("Booking not found")
        if booking.status != BookingStatus.COMPLETED_WITH_ISSUES:
            raise ValidationException(
                "Booking has no reported issues awaiting review", code="NO_ISSUES"
            )
        dispute = self.dispute_repository.get_open_for_booking(booking.id)
        if not dispute:
            raise NotFoundException("No open issue report for this booking")
        return self.resolve_dispute(
            principal,
            dispute.id,
            resolution,
            refund_percentage=refund_percentage,
            admin_notes=admin_notes,
            now=now,
        )
