"""Tests for the address verification gate and the customer price-change decision."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from lawnly.core.config import settings
from lawnly.core.exceptions import ForbiddenException, NotFoundException, ValidationException
from lawnly.models import AddressStatus, BookingStatus
from lawnly.services.address_verification_service import (
    AddressVerificationService,
    decide_price_change,
    exceeds_threshold,
)

FROZEN_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def unverified(make_address):
    return make_address(status=AddressStatus.PENDING.value, square_meters=None)


@pytest.fixture
def waiting_booking(make_booking, unverified):
    """Booking quoted at 40.00 against an address nobody has measured yet."""
    return make_booking(BookingStatus.PENDING_ADDRESS_VERIFICATION, address_id=unverified.id)


def _verify(db, admin_principal, address, **kwargs):
    kwargs.setdefault("approved", True)
    return AddressVerificationService(db).verify_address(
        admin_principal, address.id, now=FROZEN_NOW, **kwargs
    )


@pytest.mark.unit
class TestPriceDecision:
    @pytest.mark.parametrize(
        "original, recomputed, expected",
        [
            (Decimal("40.00"), Decimal("40.50"), False),
            (Decimal("40.00"), Decimal("40.51"), True),
            (Decimal("40.00"), Decimal("39.00"), True),
        ],
    )
    def test_absolute_threshold(self, original, recomputed, expected) -> None:
        assert exceeds_threshold(original, recomputed) is expected

    def test_relative_threshold(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "price_change_threshold_mode", "relative")
        monkeypatch.setattr(settings, "price_change_threshold", Decimal("5"))
        assert not exceeds_threshold(Decimal("100"), Decimal("104"))
        assert exceeds_threshold(Decimal("100"), Decimal("106"))

    def test_small_increase_absorbed(self) -> None:
        decision = decide_price_change(Decimal("40.00"), Decimal("40.45"))
        assert not decision.requires_approval
        assert not decision.apply_new_price
        assert not decision.record_original

    def test_decrease_always_applied(self) -> None:
        small = decide_price_change(Decimal("40.00"), Decimal("39.80"))
        assert small.apply_new_price and not small.record_original
        large = decide_price_change(Decimal("40.00"), Decimal("32.50"))
        assert large.apply_new_price and large.record_original
        assert not large.requires_approval


@pytest.mark.unit
class TestVerifyAddress:
    def test_large_increase_needs_customer_approval(
        self, db, admin_principal, unverified, waiting_booking, outbox_titles
    ) -> None:
        result = _verify(db, admin_principal, unverified, square_meters=Decimal("200"))

        db.refresh(waiting_booking)
        db.refresh(unverified)
        assert result.data == {"address_id": unverified.id, "updated": 1}
        assert unverified.status == AddressStatus.VERIFIED.value
        assert unverified.verified_by == admin_principal.user_id
        assert waiting_booking.status == BookingStatus.PRICE_CHANGE_PENDING.value
        assert waiting_booking.original_price == Decimal("40.00")
        assert waiting_booking.total_price == Decimal("55.00")
        assert waiting_booking.price_change_notified_at is not None
        assert outbox_titles("UserNotification") == ["Price Update - Action Required"]

    def test_same_price_opens_booking(
        self, db, admin_principal, unverified, waiting_booking, outbox_titles
    ) -> None:
        _verify(db, admin_principal, unverified, square_meters=Decimal("100"))

        db.refresh(waiting_booking)
        assert waiting_booking.status == BookingStatus.PENDING.value
        assert waiting_booking.total_price == Decimal("40.00")
        assert waiting_booking.original_price is None
        assert outbox_titles("UserNotification") == ["Address Verified - Complete Your Booking"]

    def test_increase_within_threshold_absorbed(
        self, db, admin_principal, unverified, waiting_booking
    ) -> None:
        _verify(db, admin_principal, unverified, square_meters=Decimal("103"))

        db.refresh(waiting_booking)
        assert waiting_booking.status == BookingStatus.PENDING.value
        assert waiting_booking.total_price == Decimal("40.00")

    def test_decrease_applied_and_original_recorded(
        self, db, admin_principal, unverified, waiting_booking
    ) -> None:
        result = _verify(db, admin_principal, unverified, square_meters=Decimal("50"))

        db.refresh(waiting_booking)
        assert waiting_booking.status == BookingStatus.PENDING.value
        assert waiting_booking.total_price == Decimal("32.50")
        assert waiting_booking.original_price == Decimal("40.00")
        assert "adjusted to $32.50" in result.side_effects[0].message

    def test_property_changes_reprice(
        self, db, admin_principal, unverified, waiting_booking
    ) -> None:
        _verify(
            db,
            admin_principal,
            unverified,
            square_meters=Decimal("100"),
            slope="steep",
            tier_count=2,
        )
        db.refresh(waiting_booking)
        # 40 * 1.35 * 1.1
        assert waiting_booking.total_price == Decimal("59.40")
        assert waiting_booking.status == BookingStatus.PRICE_CHANGE_PENDING.value

    def test_rejection_cancels_waiting_bookings(
        self, db, admin_principal, unverified, waiting_booking, make_booking, outbox_titles
    ) -> None:
        other = make_booking(
            BookingStatus.PENDING_ADDRESS_VERIFICATION, address_id=unverified.id
        )

        result = _verify(db, admin_principal, unverified, approved=False, admin_notes="Not a lawn")

        db.refresh(waiting_booking)
        db.refresh(other)
        db.refresh(unverified)
        assert result.data["updated"] == 2
        assert unverified.status == AddressStatus.REJECTED.value
        assert unverified.admin_notes == "Not a lawn"
        assert waiting_booking.status == BookingStatus.CANCELLED.value
        assert other.status == BookingStatus.CANCELLED.value
        assert outbox_titles("UserNotification") == ["Booking Cancelled - Address Rejected"] * 2

    def test_only_waiting_bookings_touched(
        self, db, admin_principal, unverified, make_booking
    ) -> None:
        open_booking = make_booking(BookingStatus.PENDING, address_id=unverified.id)
        result = _verify(db, admin_principal, unverified, square_meters=Decimal("300"))

        db.refresh(open_booking)
        assert result.message == "No pending bookings"
        assert open_booking.total_price == Decimal("40.00")

    @pytest.mark.parametrize(
        "kwargs, code",
        [
            ({"square_meters": Decimal("0")}, "INVALID_AREA"),
            ({"square_meters": Decimal("100"), "slope": "cliff"}, "INVALID_SLOPE"),
            ({"square_meters": Decimal("100"), "tier_count": 0}, "INVALID_TIERS"),
            ({}, "AREA_REQUIRED"),
        ],
    )
    def test_validation(
        self, db, admin_principal, unverified, waiting_booking, kwargs, code
    ) -> None:
        with pytest.raises(ValidationException) as exc:
            _verify(db, admin_principal, unverified, **kwargs)
        assert exc.value.code == code
        db.refresh(waiting_booking)
        assert waiting_booking.status == BookingStatus.PENDING_ADDRESS_VERIFICATION.value

    def test_admin_only(self, db, customer_principal, unverified) -> None:
        with pytest.raises(ForbiddenException):
            AddressVerificationService(db).verify_address(
                customer_principal, unverified.id, approved=True
            )


@pytest.mark.unit
class TestPriceChangeDecision:
    @pytest.fixture
    def price_change(self, make_booking, unverified):
        return make_booking(
            BookingStatus.PRICE_CHANGE_PENDING,
            address_id=unverified.id,
            total=Decimal("55.00"),
            original_price=Decimal("40.00"),
            price_change_notified_at=FROZEN_NOW,
        )

    def test_approve_opens_booking(
        self, db, customer_principal, price_change, outbox_titles
    ) -> None:
        result = AddressVerificationService(db).approve_price_change(
            customer_principal, price_change.id
        )

        db.refresh(price_change)
        assert price_change.status == BookingStatus.PENDING.value
        assert price_change.total_price == Decimal("55.00")
        assert [a.title for a in result.admin_alerts] == ["Price Change Approved"]
        assert outbox_titles("AdminAlert") == ["Price Change Approved"]

    def test_decline_cancels_without_charge(
        self, db, gateway, customer_principal, price_change
    ) -> None:
        AddressVerificationService(db).decline_price_change(
            customer_principal, price_change.id, now=FROZEN_NOW
        )

        db.refresh(price_change)
        assert price_change.status == BookingStatus.CANCELLED.value
        assert price_change.admin_notes == "Cancelled: customer declined price change"
        gateway.refund_payment.assert_not_called()

    def test_nothing_to_approve(self, db, customer_principal, make_booking) -> None:
        booking = make_booking(BookingStatus.PENDING)
        with pytest.raises(ValidationException) as exc:
            AddressVerificationService(db).approve_price_change(customer_principal, booking.id)
        assert exc.value.code == "NO_PRICE_CHANGE_PENDING"

    def test_other_customer_cannot_decide(
        self, db, contractor_principal, price_change
    ) -> None:
        with pytest.raises(NotFoundException):
            AddressVerificationService(db).decline_price_change(
                contractor_principal, price_change.id
            )
