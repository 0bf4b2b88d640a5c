"""Tests for payout release and transfer failure handling."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from lawnly.core.enums import RoleName
from lawnly.core.exceptions import (
    ForbiddenException,
    PreconditionFailedException,
    ServiceException,
    TransferFailedException,
    ValidationException,
)
from lawnly.models import BookingStatus, PayoutStatus
from lawnly.principal import SYSTEM_PRINCIPAL, Principal
from lawnly.services.payout_service import (
    PayoutService,
    contractor_earnings,
    contractor_earnings_cents,
)

FROZEN_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def awaiting_approval(paid_booking):
    return paid_booking(
        BookingStatus.COMPLETED_PENDING_VERIFICATION,
        payout_status=PayoutStatus.PENDING.value,
        completed_at=FROZEN_NOW,
    )


@pytest.mark.unit
@pytest.mark.parametrize(
    "total, earnings, cents",
    [
        (Decimal("40.00"), Decimal("34.00"), 3400),
        (Decimal("89.10"), Decimal("75.74"), 7574),  # 75.735 rounds half up
        (Decimal("0.01"), Decimal("0.01"), 1),
    ],
)
def test_contractor_share(total: Decimal, earnings: Decimal, cents: int) -> None:
    assert contractor_earnings(total) == earnings
    assert contractor_earnings_cents(total) == cents


@pytest.mark.unit
class TestReleasePayout:
    def test_customer_approval_releases_and_completes(
        self, db, gateway, awaiting_approval, contractor, customer_principal, outbox_titles
    ) -> None:
        booking = awaiting_approval

        result = PayoutService(db, payment_gateway=gateway).release_payout(
            customer_principal, booking.id, now=FROZEN_NOW
        )

        db.refresh(booking)
        gateway.transfer_to_contractor.assert_called_once_with(
            account_id="acct_test",
            amount_cents=3400,
            booking_id=booking.id,
            idempotency_key=f"payout-{booking.id}",
            metadata={"contractor_id": contractor.id},
        )
        assert result.data == {
            "transfer_id": "tr_test_123",
            "amount_cents": 3400,
            "transferred": True,
        }
        assert booking.status == BookingStatus.COMPLETED.value
        assert booking.payout_status == PayoutStatus.RELEASED.value
        assert booking.stripe_payout_id == "tr_test_123"
        assert outbox_titles("UserNotification") == ["Payment Released!"]

    def test_second_release_is_a_no_op(
        self, db, gateway, awaiting_approval, customer_principal
    ) -> None:
        service = PayoutService(db, payment_gateway=gateway)
        service.release_payout(customer_principal, awaiting_approval.id, now=FROZEN_NOW)

        again = service.release_payout(
            SYSTEM_PRINCIPAL, awaiting_approval.id, trigger="auto_release", now=FROZEN_NOW
        )

        assert again.message == "Payout already processed"
        assert again.data["transferred"] is False
        assert gateway.transfer_to_contractor.call_count == 1

    def test_auto_release_tells_the_customer(
        self, db, gateway, awaiting_approval, customer
    ) -> None:
        result = PayoutService(db, payment_gateway=gateway).release_payout(
            SYSTEM_PRINCIPAL, awaiting_approval.id, trigger="auto_release", now=FROZEN_NOW
        )
        titles = [n.title for n in result.notifications_for(customer.id)]
        assert titles == ["Payment Auto-Released"]

    def test_failed_transfer_keeps_payout_pending_and_alerts(
        self, db, gateway, awaiting_approval, customer_principal, outbox
    ) -> None:
        gateway.transfer_to_contractor.side_effect = ServiceException("Insufficient balance")

        with pytest.raises(TransferFailedException):
            PayoutService(db, payment_gateway=gateway).release_payout(
                customer_principal, awaiting_approval.id, now=FROZEN_NOW
            )

        db.refresh(awaiting_approval)
        assert awaiting_approval.payout_status == PayoutStatus.PENDING.value
        assert awaiting_approval.status == BookingStatus.COMPLETED_PENDING_VERIFICATION.value
        alerts = outbox("AdminAlert")
        assert [row.payload["title"] for row in alerts] == ["⚠️ Payout Failed"]
        assert alerts[0].payload["details"] == {
            "booking_id": awaiting_approval.id,
            "amount_cents": 3400,
            "contractor_account": "acct_test",
        }
        assert outbox("UserNotification") == []

    def test_frozen_payout_not_released(
        self, db, gateway, paid_booking, admin_principal
    ) -> None:
        booking = paid_booking(
            BookingStatus.COMPLETED_WITH_ISSUES, payout_status=PayoutStatus.FROZEN.value
        )
        result = PayoutService(db, payment_gateway=gateway).release_payout(
            admin_principal, booking.id, trigger="admin", now=FROZEN_NOW
        )
        assert result.data == {"payout_status": "frozen", "transferred": False}
        gateway.transfer_to_contractor.assert_not_called()

    def test_unknown_trigger(self, db, gateway, awaiting_approval, admin_principal) -> None:
        with pytest.raises(ValidationException) as exc:
            PayoutService(db, payment_gateway=gateway).release_payout(
                admin_principal, awaiting_approval.id, trigger="whenever"
            )
        assert exc.value.code == "INVALID_TRIGGER"

    def test_other_users_cannot_release(self, db, gateway, awaiting_approval) -> None:
        stranger = Principal(user_id="01HZZZZZZZZZZZZZZZZZZZZZZZ", role=RoleName.CUSTOMER)
        with pytest.raises(ForbiddenException):
            PayoutService(db, payment_gateway=gateway).release_payout(
                stranger, awaiting_approval.id
            )
        gateway.transfer_to_contractor.assert_not_called()

    def test_contractor_without_account(
        self, db, gateway, awaiting_approval, contractor, admin_principal
    ) -> None:
        contractor.stripe_account_id = None
        db.commit()
        with pytest.raises(PreconditionFailedException) as exc:
            PayoutService(db, payment_gateway=gateway).release_payout(
                admin_principal, awaiting_approval.id, trigger="admin", now=FROZEN_NOW
            )
        assert exc.value.code == "NO_PAYOUT_ACCOUNT"
