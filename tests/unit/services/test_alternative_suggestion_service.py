"""Tests for contractor-proposed alternative times."""

from datetime import date, datetime, timezone

import pytest

from lawnly.core.enums import RoleName
from lawnly.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    PaymentDeclinedException,
    ValidationException,
)
from lawnly.models import (
    AlternativeSuggestion,
    BookingStatus,
    PaymentStatus,
    SuggestionStatus,
)
from lawnly.principal import Principal
from lawnly.services.alternative_suggestion_service import AlternativeSuggestionService

FROZEN_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
TODAY = FROZEN_NOW.date()
NEXT_MONDAY = date(2026, 3, 9)
NEXT_SATURDAY = date(2026, 3, 7)


def _suggest(db, gateway, principal, booking, suggested_date, slot="afternoon"):
    return AlternativeSuggestionService(db, payment_gateway=gateway).suggest_alternative(
        principal,
        booking.id,
        suggested_date=suggested_date,
        suggested_time_slot=slot,
        today=TODAY,
    )


@pytest.mark.unit
class TestSuggestAlternative:
    def test_suggestion_recorded_and_customer_told(
        self, db, gateway, make_booking, contractor, contractor_principal, outbox_titles
    ) -> None:
        booking = make_booking(BookingStatus.PENDING)

        suggestion = _suggest(db, gateway, contractor_principal, booking, NEXT_SATURDAY)

        assert suggestion.status == SuggestionStatus.PENDING.value
        assert suggestion.contractor_id == contractor.id
        assert suggestion.suggested_time_slot == "afternoon"
        assert outbox_titles("UserNotification") == ["Alternative Time Suggested"]
        db.refresh(booking)
        assert booking.contractor_id is None
        assert booking.status == BookingStatus.PENDING.value

    def test_same_time_as_requested(
        self, db, gateway, make_booking, contractor_principal
    ) -> None:
        booking = make_booking(BookingStatus.PENDING)
        with pytest.raises(ValidationException) as exc:
            _suggest(db, gateway, contractor_principal, booking, NEXT_MONDAY, slot="early")
        assert exc.value.code == "SAME_TIME"

    def test_duplicate_slot_rejected(
        self, db, gateway, make_booking, make_contractor, contractor_principal
    ) -> None:
        booking = make_booking(BookingStatus.PENDING)
        _suggest(db, gateway, contractor_principal, booking, NEXT_SATURDAY)

        other = make_contractor()
        with pytest.raises(ConflictException) as exc:
            _suggest(
                db,
                gateway,
                Principal(user_id=other.user_id, role=RoleName.CONTRACTOR),
                booking,
                NEXT_SATURDAY,
            )
        assert exc.value.code == "DUPLICATE_SUGGESTION"
        assert db.query(AlternativeSuggestion).count() == 1

    def test_past_date(self, db, gateway, make_booking, contractor_principal) -> None:
        booking = make_booking(BookingStatus.PENDING)
        with pytest.raises(ValidationException) as exc:
            _suggest(db, gateway, contractor_principal, booking, date(2026, 3, 1))
        assert exc.value.code == "DATE_IN_PAST"

    def test_unknown_slot(self, db, gateway, make_booking, contractor_principal) -> None:
        booking = make_booking(BookingStatus.PENDING)
        with pytest.raises(ValidationException) as exc:
            _suggest(db, gateway, contractor_principal, booking, NEXT_SATURDAY, slot="midnight")
        assert exc.value.code == "INVALID_TIME_SLOT"

    def test_assigned_booking_unavailable(
        self, db, gateway, paid_booking, contractor_principal
    ) -> None:
        booking = paid_booking(BookingStatus.CONFIRMED)
        with pytest.raises(ConflictException) as exc:
            _suggest(db, gateway, contractor_principal, booking, NEXT_SATURDAY)
        assert exc.value.code == "JOB_UNAVAILABLE"

    def test_customers_cannot_suggest(
        self, db, gateway, make_booking, customer_principal
    ) -> None:
        booking = make_booking(BookingStatus.PENDING)
        with pytest.raises(ForbiddenException):
            _suggest(db, gateway, customer_principal, booking, NEXT_SATURDAY)


@pytest.mark.unit
class TestRespondToSuggestion:
    @pytest.fixture
    def booking(self, make_booking):
        return make_booking(BookingStatus.PENDING)

    @pytest.fixture
    def suggestion(self, db, gateway, booking, contractor_principal):
        return _suggest(db, gateway, contractor_principal, booking, NEXT_SATURDAY)

    def test_accept_moves_booking_and_charges(
        self, db, gateway, booking, suggestion, contractor, make_contractor,
        customer_principal, outbox,
    ) -> None:
        rival = make_contractor()
        sibling = _suggest(
            db,
            gateway,
            Principal(user_id=rival.user_id, role=RoleName.CONTRACTOR),
            booking,
            NEXT_MONDAY,
            slot="late_morning",
        )

        result = AlternativeSuggestionService(db, payment_gateway=gateway).accept_suggestion(
            customer_principal, suggestion.id, now=FROZEN_NOW
        )

        db.refresh(booking)
        db.refresh(suggestion)
        db.refresh(sibling)
        assert result.data["suggestion_id"] == suggestion.id
        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.contractor_id == contractor.id
        assert booking.scheduled_date == NEXT_SATURDAY
        assert booking.time_slot == "afternoon"
        assert booking.payment_status == PaymentStatus.PAID.value
        assert suggestion.status == SuggestionStatus.ACCEPTED.value
        assert sibling.status == SuggestionStatus.DECLINED.value
        assert sibling.responded_at is not None
        gateway.charge_booking.assert_called_once()
        contractor_titles = [n.title for n in result.notifications_for(contractor.user_id)]
        assert sorted(contractor_titles) == ["Alternative Time Accepted", "Job Accepted!"]

    def test_declined_card_keeps_suggestion_open(
        self, db, gateway, booking, suggestion, customer_principal
    ) -> None:
        gateway.charge_booking.side_effect = PaymentDeclinedException("Your card was declined")

        with pytest.raises(PaymentDeclinedException):
            AlternativeSuggestionService(db, payment_gateway=gateway).accept_suggestion(
                customer_principal, suggestion.id, now=FROZEN_NOW
            )

        db.refresh(booking)
        db.refresh(suggestion)
        assert suggestion.status == SuggestionStatus.PENDING.value
        assert booking.scheduled_date == NEXT_MONDAY
        assert booking.contractor_id is None

    def test_decline_notifies_contractor(
        self, db, gateway, suggestion, customer_principal, outbox_titles
    ) -> None:
        result = AlternativeSuggestionService(db, payment_gateway=gateway).decline_suggestion(
            customer_principal, suggestion.id, now=FROZEN_NOW
        )

        db.refresh(suggestion)
        assert result.message == "Suggestion declined"
        assert suggestion.status == SuggestionStatus.DECLINED.value
        assert "Alternative Time Declined" in outbox_titles("UserNotification")

    def test_closed_suggestion(self, db, gateway, suggestion, customer_principal) -> None:
        service = AlternativeSuggestionService(db, payment_gateway=gateway)
        service.decline_suggestion(customer_principal, suggestion.id, now=FROZEN_NOW)

        with pytest.raises(ConflictException) as exc:
            service.accept_suggestion(customer_principal, suggestion.id, now=FROZEN_NOW)
        assert exc.value.code == "SUGGESTION_CLOSED"
        gateway.charge_booking.assert_not_called()

    def test_only_booking_owner_responds(
        self, db, gateway, suggestion, contractor_principal
    ) -> None:
        with pytest.raises(ForbiddenException):
            AlternativeSuggestionService(db, payment_gateway=gateway).decline_suggestion(
                contractor_principal, suggestion.id
            )

    def test_listing_hidden_from_other_customers(self, db, gateway, booking, suggestion) -> None:
        stranger = Principal(user_id="01HZZZZZZZZZZZZZZZZZZZZZZZ", role=RoleName.CUSTOMER)
        with pytest.raises(NotFoundException):
            AlternativeSuggestionService(db, payment_gateway=gateway).list_for_booking(
                stranger, booking.id
            )
