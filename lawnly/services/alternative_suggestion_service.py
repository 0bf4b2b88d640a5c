# lawnly/services/alternative_suggestion_service.py
"""
Alternative time suggestions.

A contractor who cannot make the requested slot may propose another one
without taking the job. If the customer accepts, the booking goes through
the same claim-and-charge path as a normal acceptance, moved to the
proposed date, and every other pending suggestion on it is declined.
"""

from datetime import date, datetime
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.enums import NotificationSeverity, RoleName
from ..core.exceptions import (
    ConflictException,
    DuplicateRecordException,
    NotFoundException,
    ValidationException,
)
from ..domain.booking_state_machine import transition
from ..events.side_effects import OperationResult, SideEffect, UserNotification
from ..models.alternative_suggestion import AlternativeSuggestion, SuggestionStatus
from ..models.booking import Booking, BookingStatus, TimeSlot
from ..principal import Principal
from ..repositories.factory import RepositoryFactory
from .acceptance_service import AcceptanceService
from .base import BaseService
from .stripe_service import StripeService

logger = logging.getLogger(__name__)


class AlternativeSuggestionService(BaseService):
    def __init__(
        self,
        db: Session,
        acceptance_service: Optional[AcceptanceService] = None,
        payment_gateway: Optional[StripeService] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.suggestion_repository = RepositoryFactory.create_alternative_suggestion_repository(db)
        self.contractor_repository = RepositoryFactory.create_contractor_repository(db)
        self.acceptance_service = acceptance_service or AcceptanceService(db, payment_gateway)

    @BaseService.measure_operation("suggest_alternative_time")
    def suggest_alternative(
        self,
        principal: Principal,
        booking_id: str,
        *,
        suggested_date: date,
        suggested_time_slot: str,
        today: Optional[date] = None,
    ) -> AlternativeSuggestion:
        """
        Propose a different (date, slot) for an unassigned pending booking.

        Raises:
            ConflictException: the same slot was already proposed for this booking
        """
        contractor = self.acceptance_service.get_contractor_for(principal)
        self.acceptance_service.check_can_work(contractor)
        try:
            slot = TimeSlot(suggested_time_slot)
        except ValueError:
            raise ValidationException(
                f"Unknown time slot '{suggested_time_slot}'", code="INVALID_TIME_SLOT"
            )
        if suggested_date < (today or self.now().date()):
            raise ValidationException("Suggested date cannot be in the past", code="DATE_IN_PAST")

        with self.transaction():
            booking = self.booking_repository.get_by_id(booking_id)
            if not booking:
                raise NotFoundException("Booking not found")
            if booking.status != BookingStatus.PENDING or booking.contractor_id:
                raise ConflictException("This job is no longer available", code="JOB_UNAVAILABLE")
            if booking.scheduled_date == suggested_date and booking.time_slot == slot.value:
                raise ValidationException(
                    "Suggested time matches the requested time", code="SAME_TIME"
                )
            try:
                suggestion = self.suggestion_repository.create(
                    booking_id=booking.id,
                    contractor_id=contractor.id,
                    suggested_date=suggested_date,
                    suggested_time_slot=slot.value,
                    status=SuggestionStatus.PENDING.value,
                )
            except DuplicateRecordException:
                raise ConflictException(
                    "This time has already been suggested for this booking",
                    code="DUPLICATE_SUGGESTION",
                )

            effects: List[SideEffect] = [
                UserNotification(
                    user_id=booking.customer_id,
                    title="Alternative Time Suggested",
                    message=(
                        f"{contractor.business_name or 'A contractor'} can mow your lawn on "
                        f"{suggested_date:%A, %d %B} ({slot.value.replace('_', ' ')}) instead. "
                        "Accept the new time to confirm your booking."
                    ),
                    booking_id=booking.id,
                )
            ]
            self.publish(effects, scope=f"suggest:{suggestion.id}")

        return suggestion

    def list_for_booking(
        self, principal: Principal, booking_id: str
    ) -> List[AlternativeSuggestion]:
        booking = self._get_visible_booking(principal, booking_id)
        return self.suggestion_repository.find_for_booking(booking.id)

    def _get_visible_booking(self, principal: Principal, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundException("Booking not found")
        if principal.is_customer and not booking.is_owned_by(principal.user_id):
            raise NotFoundException("Booking not found")
        return booking

    def _get_pending_suggestion(
        self, principal: Principal, suggestion_id: str
    ) -> AlternativeSuggestion:
        principal.require_role(RoleName.CUSTOMER)
        suggestion = self.suggestion_repository.get_by_id(suggestion_id)
        if not suggestion:
            raise NotFoundException("Suggestion not found")
        booking = self.booking_repository.get_by_id(suggestion.booking_id)
        if not booking or not booking.is_owned_by(principal.user_id):
            raise NotFoundException("Suggestion not found")
        if suggestion.status != SuggestionStatus.PENDING:
            raise ConflictException(
                f"This suggestion has already been {suggestion.status}", code="SUGGESTION_CLOSED"
            )
        return suggestion

    @BaseService.measure_operation("accept_alternative_time")
    def accept_suggestion(
        self, principal: Principal, suggestion_id: str, now: Optional[datetime] = None
    ) -> OperationResult:
        """
        Customer accepts a proposed time.

        The booking is assigned and charged exactly as in a normal acceptance;
        a decline leaves both the booking and the suggestion pending.
        """
        current_time = self.now(now)
        suggestion = self._get_pending_suggestion(principal, suggestion_id)
        contractor = self.contractor_repository.get_by_id(suggestion.contractor_id)
        if not contractor:
            raise NotFoundException("Contractor not found")

        def _settle_suggestions(booking: Booking) -> List[SideEffect]:
            transition(suggestion, SuggestionStatus.ACCEPTED)
            suggestion.responded_at = current_time
            declined = self.suggestion_repository.decline_pending_siblings(
                booking.id, suggestion.id, current_time
            )
            self.logger.info(f"Declined {declined} sibling suggestions on booking {booking.id}")
            return [
                UserNotification(
                    user_id=contractor.user_id,
                    title="Alternative Time Accepted",
                    message=(
                        f"The customer accepted your suggested time of "
                        f"{suggestion.suggested_date:%A, %d %B}. The job is now yours."
                    ),
                    severity=NotificationSeverity.SUCCESS.value,
                    booking_id=booking.id,
                )
            ]

        result = self.acceptance_service.assign_and_charge(
            suggestion.booking_id,
            contractor,
            now=current_time,
            scope=f"accept_suggestion:{suggestion.id}",
            scheduled_date=suggestion.suggested_date,
            time_slot=suggestion.suggested_time_slot,
            extra_work=_settle_suggestions,
        )
        result.message = "Alternative time accepted and payment processed"
        result.data["suggestion_id"] = suggestion.id
        return result

    @BaseService.measure_operation("decline_alternative_time")
    def decline_suggestion(
        self, principal: Principal, suggestion_id: str, now: Optional[datetime] = None
    ) -> OperationResult:
        with self.transaction():
            suggestion = self._get_pending_suggestion(principal, suggestion_id)
            transition(suggestion, SuggestionStatus.DECLINED)
            suggestion.responded_at = self.now(now)
            contractor = self.contractor_repository.get_by_id(suggestion.contractor_id)
            effects: List[SideEffect] = []
            if contractor:
                effects.append(
                    UserNotification(
                        user_id=contractor.user_id,
                        title="Alternative Time Declined",
                        message=(
                            f"The customer declined your suggested time of "
                            f"{suggestion.suggested_date:%A, %d %B}."
                        ),
                        booking_id=suggestion.booking_id,
                    )
                )
            self.publish(effects, scope=f"decline_suggestion:{suggestion.id}")

        return OperationResult(
            message="Suggestion declined",
            booking_id=suggestion.booking_id,
            data={"suggestion_id": suggestion.id},
            side_effects=effects,
        )
