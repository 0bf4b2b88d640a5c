# tests/conftest.py
"""
Pytest configuration for the Lawnly booking core.

Sets the test environment BEFORE any lawnly import so the settings object
and the module-level engine never point at a real database, and patches
Resend globally so no test can send a real email.

Every test gets a fresh in-memory SQLite database. Services take an
injected Stripe gateway mock and an injected clock (``FROZEN_NOW``).
"""

import os

# CRITICAL: Set testing mode BEFORE any app imports!
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["EMAIL_ENABLED"] = "false"
os.environ.setdefault("CI", "true")

# CRITICAL: Mock Resend API globally to prevent real emails in ANY test
import unittest.mock

global_resend_mock = unittest.mock.patch("resend.Emails.send")
mocked_send = global_resend_mock.start()
mocked_send.return_value = {"id": "test-email-id"}

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from lawnly.core.config import settings
from lawnly.core.enums import RoleName
from lawnly.database import Base
from lawnly.models import (
    Address,
    AddressStatus,
    ApprovalStatus,
    Booking,
    BookingStatus,
    Contractor,
    ContractorTier,
    EventOutbox,
    JobPhoto,
    PaymentStatus,
    PhotoType,
    User,
)
from lawnly.principal import Principal
from lawnly.services.stripe_service import (
    ChargeResult,
    RefundResult,
    StripeService,
    TransferResult,
)

# Monday 2 March 2026, 09:00 UTC
FROZEN_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
NEXT_MONDAY = date(2026, 3, 9)
NEXT_SATURDAY = date(2026, 3, 7)


# ============================================================================
# DATABASE
# ============================================================================


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(autouse=True)
def _no_gst(monkeypatch: pytest.MonkeyPatch):
    """Quotes in tests are ex-GST unless a test opts back in."""
    monkeypatch.setattr(settings, "gst_rate", Decimal("0"))


# ============================================================================
# PAYMENT GATEWAY
# ============================================================================


@pytest.fixture
def gateway() -> MagicMock:
    mock = MagicMock(spec=StripeService)
    mock.charge_booking.return_value = ChargeResult(
        payment_intent_id="pi_test_123",
        status="succeeded",
        amount_cents=4000,
        application_fee_cents=600,
    )
    mock.transfer_to_contractor.return_value = TransferResult(
        transfer_id="tr_test_123", amount_cents=3400
    )
    mock.refund_payment.return_value = RefundResult(
        refund_id="re_test_123", amount_cents=4000, status="succeeded"
    )
    return mock


# ============================================================================
# USERS AND PROFILES
# ============================================================================


@pytest.fixture
def customer(db: Session) -> User:
    user = User(
        email="casey@example.com",
        full_name="Casey Customer",
        role=RoleName.CUSTOMER.value,
        stripe_customer_id="cus_test",
        stripe_payment_method_id="pm_test",
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def contractor_user(db: Session) -> User:
    user = User(
        email="mowing@example.com",
        full_name="Morgan Mower",
        role=RoleName.CONTRACTOR.value,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def admin_user(db: Session) -> User:
    user = User(email="ops@example.com", full_name="Ops Admin", role=RoleName.ADMIN.value)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def make_contractor(db: Session) -> Callable[..., Contractor]:
    counter = {"n": 0}

    def _make(user: Optional[User] = None, **overrides: Any) -> Contractor:
        if user is None:
            counter["n"] += 1
            user = User(
                email=f"contractor{counter['n']}@example.com",
                role=RoleName.CONTRACTOR.value,
            )
            db.add(user)
            db.flush()
        fields: Dict[str, Any] = dict(
            user_id=user.id,
            business_name="Green Blades",
            approval_status=ApprovalStatus.APPROVED.value,
            is_active=True,
            tier=ContractorTier.STANDARD.value,
            stripe_account_id="acct_test",
            stripe_onboarding_complete=True,
            quality_warnings=[],
            quality_reviews=[],
        )
        fields.update(overrides)
        contractor = Contractor(**fields)
        db.add(contractor)
        db.commit()
        return contractor

    return _make


@pytest.fixture
def contractor(make_contractor, contractor_user: User) -> Contractor:
    return make_contractor(contractor_user)


@pytest.fixture
def make_address(db: Session, customer: User) -> Callable[..., Address]:
    def _make(**overrides: Any) -> Address:
        fields: Dict[str, Any] = dict(
            user_id=customer.id,
            street_address="12 Wattle Street",
            suburb="Newtown",
            state="NSW",
            postal_code="2042",
            square_meters=Decimal("100"),
            slope="flat",
            tier_count=1,
            status=AddressStatus.VERIFIED.value,
        )
        fields.update(overrides)
        address = Address(**fields)
        db.add(address)
        db.commit()
        return address

    return _make


@pytest.fixture
def address(make_address) -> Address:
    return make_address()


@pytest.fixture
def make_booking(db: Session, customer: User, address: Address) -> Callable[..., Booking]:
    def _make(
        status: BookingStatus = BookingStatus.PENDING,
        contractor: Optional[Contractor] = None,
        total: Decimal = Decimal("40.00"),
        **overrides: Any,
    ) -> Booking:
        fields: Dict[str, Any] = dict(
            customer_id=customer.id,
            address_id=address.id,
            contractor_id=contractor.id if contractor else None,
            scheduled_date=NEXT_MONDAY,
            time_slot="early",
            grass_length="short",
            clippings_removal=False,
            total_price=total,
            status=status.value,
            payment_status=PaymentStatus.UNPAID.value,
        )
        fields.update(overrides)
        booking = Booking(**fields)
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def paid_booking(make_booking, contractor: Contractor) -> Callable[..., Booking]:
    """Builder for bookings that were accepted and charged."""

    def _make(status: BookingStatus = BookingStatus.CONFIRMED, **overrides: Any) -> Booking:
        fields: Dict[str, Any] = dict(
            payment_status=PaymentStatus.PAID.value,
            payment_intent_id="pi_test_123",
            charged_at=FROZEN_NOW - timedelta(days=3),
        )
        fields.update(overrides)
        return make_booking(status, contractor=contractor, **fields)

    return _make


@pytest.fixture
def add_photos(db: Session) -> Callable[..., List[JobPhoto]]:
    def _add(
        booking: Booking, contractor: Contractor, before: int = 4, after: int = 4
    ) -> List[JobPhoto]:
        photos = [
            JobPhoto(
                booking_id=booking.id,
                contractor_id=contractor.id,
                photo_type=photo_type.value,
                storage_path=f"{booking.id}/{photo_type.value}-{index}.jpg",
            )
            for photo_type, count in ((PhotoType.BEFORE, before), (PhotoType.AFTER, after))
            for index in range(count)
        ]
        db.add_all(photos)
        db.commit()
        return photos

    return _add


# ============================================================================
# PRINCIPALS
# ============================================================================


@pytest.fixture
def customer_principal(customer: User) -> Principal:
    return Principal(user_id=customer.id, role=RoleName.CUSTOMER)


@pytest.fixture
def contractor_principal(contractor: Contractor) -> Principal:
    return Principal(user_id=contractor.user_id, role=RoleName.CONTRACTOR)


@pytest.fixture
def admin_principal(admin_user: User) -> Principal:
    return Principal(user_id=admin_user.id, role=RoleName.ADMIN)


# ============================================================================
# OUTBOX
# ============================================================================


@pytest.fixture
def outbox(db: Session) -> Callable[..., List[EventOutbox]]:
    """Committed outbox rows, optionally filtered by event type."""

    def _rows(event_type: Optional[str] = None) -> List[EventOutbox]:
        db.expire_all()
        query = db.query(EventOutbox)
        if event_type:
            query = query.filter(EventOutbox.event_type == event_type)
        return query.order_by(EventOutbox.created_at.asc(), EventOutbox.id.asc()).all()

    return _rows


@pytest.fixture
def outbox_titles(outbox) -> Callable[..., List[str]]:
    def _titles(event_type: Optional[str] = None) -> List[str]:
        return [row.payload["title"] for row in outbox(event_type)]

    return _titles
