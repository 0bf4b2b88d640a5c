# lawnly/services/stripe_service.py
"""
Stripe gateway for the Lawnly booking core.

The only place that talks to the payment processor. Workflows call the
three money movements below and never import ``stripe`` themselves:

- charge_booking: off-session PaymentIntent against the customer's saved
  card, grouped with later transfers by ``transfer_group=<booking id>``
- transfer_to_contractor: payout of the contractor share to a Connect account
- refund_payment: full or partial refund of a booking charge

Every call carries an idempotency key so a retried workflow step never
moves money twice.
"""

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session
import stripe

from ..core.config import settings
from ..core.exceptions import (
    PaymentDeclinedException,
    PaymentProcessorException,
    ServiceException,
)
from ..domain.pricing_calculator import floor_cents, to_cents
from ..monitoring.prometheus_metrics import prometheus_metrics
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    payment_intent_id: str
    status: str
    amount_cents: int
    application_fee_cents: int


@dataclass(frozen=True)
class TransferResult:
    transfer_id: str
    amount_cents: int


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    amount_cents: int
    status: str


class StripeService(BaseService):
    """Charges, transfers and refunds against Stripe."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.stripe_configured = False
        if settings.stripe_secret_key:
            stripe.api_key = settings.stripe_secret_key.get_secret_value()
            stripe.max_network_retries = 1
            self.stripe_configured = True
            self.logger.info("Stripe service configured successfully")
        else:
            self.logger.warning("Stripe secret key not configured - money movements will fail")

        self.platform_fee_rate = Decimal(str(settings.platform_fee_rate))

    def _check_stripe_configured(self) -> None:
        if not self.stripe_configured:
            raise ServiceException(
                "Stripe service not configured. "
                "Please check STRIPE_SECRET_KEY environment variable."
            )

    def application_fee_cents(self, amount_cents: int) -> int:
        return floor_cents(Decimal(amount_cents) * self.platform_fee_rate)

    @BaseService.measure_operation("stripe_charge_booking")
    def charge_booking(
        self,
        *,
        booking_id: str,
        customer_id: str,
        payment_method_id: str,
        amount: Decimal,
        idempotency_key: Optional[str] = None,
    ) -> ChargeResult:
        """
        Charge the customer's saved card for a booking, off session.

        Raises:
            PaymentDeclinedException: the card was declined
            PaymentProcessorException: any other processor failure
        """
        self._check_stripe_configured()
        amount_cents = to_cents(amount)
        fee_cents = self.application_fee_cents(amount_cents)
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=settings.currency,
                customer=customer_id,
                payment_method=payment_method_id,
                confirm=True,
                off_session=True,
                transfer_group=booking_id,
                statement_descriptor_suffix=settings.statement_descriptor_suffix,
                metadata={
                    "booking_id": booking_id,
                    "platform": "lawnly",
                    "application_fee_cents": str(fee_cents),
                },
                idempotency_key=idempotency_key or f"charge-{booking_id}",
            )
        except stripe.CardError as e:
            prometheus_metrics.record_money_movement("charge", "declined")
            decline_code = getattr(e, "code", None)
            self.logger.info(f"Card declined for booking {booking_id}: {decline_code}")
            raise PaymentDeclinedException(
                "Your card was declined. Please update your payment method.",
                decline_code=decline_code,
            )
        except stripe.StripeError as e:
            prometheus_metrics.record_money_movement("charge", "error")
            self.logger.error(f"Stripe error charging booking {booking_id}: {str(e)}")
            raise PaymentProcessorException(
                "Payment processor unavailable, please try again",
                details={"booking_id": booking_id},
            )

        if intent.status != "succeeded":
            # requires_action etc. cannot complete off session
            prometheus_metrics.record_money_movement("charge", "declined")
            raise PaymentDeclinedException(
                "Your card requires authentication. Please update your payment method.",
                decline_code=intent.status,
            )

        prometheus_metrics.record_money_movement("charge", "succeeded")
        self.logger.info(
            "Charged booking",
            extra={"booking_id": booking_id, "amount_cents": amount_cents, "pi": intent.id},
        )
        return ChargeResult(
            payment_intent_id=intent.id,
            status=intent.status,
            amount_cents=amount_cents,
            application_fee_cents=fee_cents,
        )

    @BaseService.measure_operation("stripe_transfer_to_contractor")
    def transfer_to_contractor(
        self,
        *,
        account_id: str,
        amount_cents: int,
        booking_id: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TransferResult:
        """
        Move the contractor's share to their connected account.

        Raises:
            ServiceException: on any processor failure
        """
        self._check_stripe_configured()
        try:
            transfer = stripe.Transfer.create(
                amount=amount_cents,
                currency=settings.currency,
                destination=account_id,
                transfer_group=booking_id,
                metadata={"booking_id": booking_id, **(metadata or {})},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            prometheus_metrics.record_money_movement("transfer", "error")
            self.logger.error(f"Stripe error creating transfer for booking {booking_id}: {str(e)}")
            raise ServiceException(f"Failed to create transfer: {str(e)}")

        prometheus_metrics.record_money_movement("transfer", "succeeded")
        return TransferResult(transfer_id=transfer.id, amount_cents=amount_cents)

    @BaseService.measure_operation("stripe_refund_payment")
    def refund_payment(
        self,
        *,
        payment_intent_id: str,
        idempotency_key: str,
        amount_cents: Optional[int] = None,
        reason: str = "requested_by_customer",
    ) -> RefundResult:
        """Refund a charge; ``amount_cents=None`` refunds it in full."""
        self._check_stripe_configured()
        params: Dict[str, Any] = {"payment_intent": payment_intent_id, "reason": reason}
        if amount_cents is not None:
            params["amount"] = amount_cents
        try:
            refund = stripe.Refund.create(**params, idempotency_key=idempotency_key)
        except stripe.StripeError as e:
            prometheus_metrics.record_money_movement("refund", "error")
            self.logger.error(f"Stripe error refunding {payment_intent_id}: {str(e)}")
            raise PaymentProcessorException(
                "Refund failed, please try again",
                details={"payment_intent_id": payment_intent_id},
            )

        prometheus_metrics.record_money_movement("refund", "succeeded")
        return RefundResult(
            refund_id=refund.id,
            amount_cents=int(getattr(refund, "amount", amount_cents or 0) or 0),
            status=getattr(refund, "status", "succeeded"),
        )
