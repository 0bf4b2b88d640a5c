# lawnly/services/completion_service.py
"""
Job Completion Workflow.

The assigned contractor marks a confirmed job done once the before and
after photos are uploaded. A clean report opens the customer's review
window with the payout pending; a report with issues freezes the payout
and files a contractor-raised dispute so admins settle it through the
dispute engine.

Also holds the customer's approval (with optional rating), the
contractor's reply to a rating and signed access to the job photos.
"""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import NotificationSeverity, RoleName
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    PreconditionFailedException,
    ValidationException,
)
from ..domain.booking_state_machine import transition
from ..events.side_effects import AdminAlert, OperationResult, SideEffect, UserNotification
from ..models.booking import Booking, BookingStatus, PayoutStatus
from ..models.contractor import Contractor
from ..models.dispute import DisputeRaiser, DisputeReason, DisputeStatus
from ..models.job_photo import PhotoType
from ..principal import Principal
from ..repositories.factory import RepositoryFactory
from .acceptance_service import AcceptanceService
from .base import BaseService
from .payout_service import PayoutService
from .photo_storage import PhotoStorageClient
from .stripe_service import StripeService

logger = logging.getLogger(__name__)

MAX_RESPONSE_LENGTH = 1000


def normalize_issues(issues: Optional[List[str]]) -> List[str]:
    """Lower-case, de-duplicated issue tags in the order reported."""
    seen: List[str] = []
    for tag in issues or []:
        cleaned = str(tag).strip().lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def dispute_reason_for(issues: List[str]) -> str:
    for tag in issues:
        try:
            return DisputeReason(tag).value
        except ValueError:
            continue
    return DisputeReason.OTHER.value


class CompletionService(BaseService):
    """Completion, approval and rating flows for confirmed jobs."""

    def __init__(
        self,
        db: Session,
        payout_service: Optional[PayoutService] = None,
        payment_gateway: Optional[StripeService] = None,
        storage_client: Optional[PhotoStorageClient] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.contractor_repository = RepositoryFactory.create_contractor_repository(db)
        self.dispute_repository = RepositoryFactory.create_dispute_repository(db)
        self.job_photo_repository = RepositoryFactory.create_job_photo_repository(db)
        self.payout_service = payout_service or PayoutService(db, payment_gateway)
        self.acceptance_service = AcceptanceService(db, payment_gateway)
        self._storage_client = storage_client

    @property
    def storage_client(self) -> PhotoStorageClient:
        if self._storage_client is None:
            self._storage_client = PhotoStorageClient()
        return self._storage_client

    def _get_assigned_booking(self, contractor: Contractor, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id, for_update=True)
        if not booking:
            raise NotFoundException("Booking not found")
        if booking.contractor_id != contractor.id:
            raise ForbiddenException("You are not assigned to this booking")
        return booking

    def _check_photo_evidence(self, booking: Booking, contractor: Contractor) -> None:
        before = self.job_photo_repository.count_photos(booking.id, contractor.id, PhotoType.BEFORE)
        after = self.job_photo_repository.count_photos(booking.id, contractor.id, PhotoType.AFTER)
        if before < settings.min_before_photos or after < settings.min_after_photos:
            raise PreconditionFailedException(
                f"Minimum {settings.min_before_photos} before and {settings.min_after_photos} "
                f"after photos required. You have {before} before and {after} after.",
                code="INSUFFICIENT_PHOTOS",
                details={"before": before, "after": after},
            )

    @BaseService.measure_operation("complete_job")
    def complete_job(
        self,
        principal: Principal,
        booking_id: str,
        *,
        issues: Optional[List[str]] = None,
        issue_notes: Optional[str] = None,
        issue_photos: Optional[List[str]] = None,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """
        Mark a confirmed job complete.

        Raises:
            ForbiddenException: caller is not the assigned contractor
            InvalidTransitionException: booking is not confirmed
            PreconditionFailedException: not enough before/after photos
        """
        contractor = self.acceptance_service.get_contractor_for(principal)
        current_time = self.now(now)
        reported = normalize_issues(issues)

        with self.transaction():
            booking = self._get_assigned_booking(contractor, booking_id)
            if booking.status != BookingStatus.CONFIRMED:
                raise ValidationException(
                    "Booking must be in confirmed status to complete",
                    code="INVALID_TRANSITION",
                    details={"status": booking.status},
                )
            self._check_photo_evidence(booking, contractor)

            booking.completed_at = current_time
            if reported:
                effects = self._complete_with_issues(
                    booking, contractor, reported, issue_notes, issue_photos or [], current_time
                )
            else:
                transition(booking, BookingStatus.COMPLETED_PENDING_VERIFICATION)
                booking.payout_status = PayoutStatus.PENDING.value
                effects = self._completion_effects(booking, contractor)
            self.publish(effects, scope=f"complete_job:{booking.id}")

        self.log_operation(
            "job_completed", booking_id=booking_id, status=booking.status, issues=reported
        )
        return OperationResult(
            message="Job marked complete",
            booking_id=booking_id,
            data={"status": booking.status, "payout_status": booking.payout_status},
            side_effects=effects,
        )

    def _completion_effects(self, booking: Booking, contractor: Contractor) -> List[SideEffect]:
        name = contractor.business_name or "Your contractor"
        return [
            UserNotification(
                user_id=booking.customer_id,
                title="Your Lawn Has Been Mowed!",
                message=(
                    f"{name} has completed your job. Please review the before/after photos "
                    f"and approve the payment within {settings.auto_release_hours} hours."
                ),
                severity=NotificationSeverity.SUCCESS.value,
                booking_id=booking.id,
                send_email=True,
            ),
            UserNotification(
                user_id=contractor.user_id,
                title="Job Marked Complete",
                message=(
                    "Your job is marked complete. Payment will be released after customer "
                    f"approval or automatically in {settings.auto_release_hours} hours."
                ),
                booking_id=booking.id,
            ),
        ]

    def _complete_with_issues(
        self,
        booking: Booking,
        contractor: Contractor,
        issues: List[str],
        notes: Optional[str],
        photos: List[str],
        at: datetime,
    ) -> List[SideEffect]:
        transition(booking, BookingStatus.COMPLETED_WITH_ISSUES)
        booking.payout_status = PayoutStatus.FROZEN.value
        booking.contractor_issues = issues
        booking.contractor_issue_notes = notes
        booking.contractor_issue_photos = photos

        issue_list = ", ".join(tag.replace("_", " ") for tag in issues)
        dispute = self.dispute_repository.create(
            booking_id=booking.id,
            raised_by=contractor.user_id,
            raised_by_role=DisputeRaiser.CONTRACTOR.value,
            description=notes or f"Contractor reported issues: {issue_list}",
            dispute_reason=dispute_reason_for(issues),
            contractor_evidence_photos=photos,
            customer_evidence_photos=[],
            status=DisputeStatus.PENDING.value,
        )
        return [
            UserNotification(
                user_id=booking.customer_id,
                title="Job Completed With Issues",
                message=(
                    f"Your contractor completed the job but reported: {issue_list}. "
                    "Our team will review it and be in touch. Payment to the contractor is on hold."
                ),
                severity=NotificationSeverity.WARNING.value,
                booking_id=booking.id,
                send_email=True,
            ),
            AdminAlert(
                title="Job Completed With Issues",
                message=(
                    f"{contractor.business_name or 'A contractor'} reported issues on booking "
                    f"{booking.id}: {issue_list}. Payout is frozen pending review."
                    + (f" Notes: {notes}" if notes else "")
                ),
                severity=NotificationSeverity.WARNING.value,
                booking_id=booking.id,
                details={
                    "issues": issues,
                    "photo_count": len(photos),
                    "dispute_id": dispute.id,
                    "total_price": float(booking.total_price_decimal),
                },
            ),
        ]

    @BaseService.measure_operation("approve_job")
    def approve_job(
        self,
        principal: Principal,
        booking_id: str,
        *,
        rating: Optional[int] = None,
        comment: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """
        Customer signs off on the work, optionally rating it, and the payout is released.

        The rating is saved before the transfer; if the transfer fails the
        booking stays payable and the auto-release sweeper retries it.
        """
        principal.require_role(RoleName.CUSTOMER)
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationException("Rating must be between 1 and 5", code="INVALID_RATING")
        current_time = self.now(now)

        with self.transaction():
            booking = self.booking_repository.get_by_id(booking_id, for_update=True)
            if not booking or not booking.is_owned_by(principal.user_id):
                raise NotFoundException("Booking not found")
            if booking.status != BookingStatus.COMPLETED_PENDING_VERIFICATION:
                raise ValidationException(
                    "This job is not awaiting your approval",
                    code="NOT_AWAITING_APPROVAL",
                    details={"status": booking.status},
                )
            if rating is not None:
                booking.customer_rating = rating
                booking.rating_comment = comment
                booking.rating_submitted_at = current_time

        return self.payout_service.release_payout(
            principal, booking_id, trigger="approval", now=current_time
        )

    @BaseService.measure_operation("reply_to_rating")
    def reply_to_rating(
        self,
        principal: Principal,
        booking_id: str,
        response: str,
        now: Optional[datetime] = None,
    ) -> Booking:
        contractor = self.acceptance_service.get_contractor_for(principal)
        text = (response or "").strip()
        if not text:
            raise ValidationException("Response cannot be empty", code="EMPTY_RESPONSE")
        if len(text) > MAX_RESPONSE_LENGTH:
            raise ValidationException(
                f"Response must be at most {MAX_RESPONSE_LENGTH} characters",
                code="RESPONSE_TOO_LONG",
            )

        with self.transaction():
            booking = self._get_assigned_booking(contractor, booking_id)
            if booking.customer_rating is None:
                raise ValidationException("This job has not been rated", code="NOT_RATED")
            if booking.contractor_rating_response:
                raise ConflictException("You have already replied to this rating")
            booking.contractor_rating_response = text
            booking.contractor_response_at = self.now(now)
        return booking

    def list_job_photos(self, principal: Principal, booking_id: str) -> List[Dict[str, Any]]:
        """Signed read URLs for every photo on a booking the caller may see."""
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundException("Booking not found")
        if not principal.is_admin and not booking.is_owned_by(principal.user_id):
            contractor = self.contractor_repository.get_by_user_id(principal.user_id)
            if not contractor or contractor.id != booking.contractor_id:
                raise NotFoundException("Booking not found")

        photos = self.job_photo_repository.find_for_booking(booking.id)
        signed = self.storage_client.signed_urls([p.storage_path for p in photos])
        return [
            {
                "id": photo.id,
                "photo_type": photo.photo_type,
                "url": url.url,
                "expires_at": url.expires_at,
            }
            for photo, url in zip(photos, signed)
        ]
