"""Conftest for route tests - a TestClient bound to the per-test database."""

from typing import Callable, Dict

from fastapi.testclient import TestClient
import jwt
import pytest
from sqlalchemy.orm import Session

from lawnly.api.dependencies import (
    get_acceptance_service,
    get_alternative_suggestion_service,
    get_db,
    get_payout_service,
)
from lawnly.core.config import settings
from lawnly.main import app
from lawnly.services.acceptance_service import AcceptanceService
from lawnly.services.alternative_suggestion_service import AlternativeSuggestionService
from lawnly.services.payout_service import PayoutService


@pytest.fixture
def client(db: Session, gateway) -> TestClient:
    def _db_override():
        yield db

    app.dependency_overrides[get_db] = _db_override
    app.dependency_overrides[get_acceptance_service] = lambda: AcceptanceService(
        db, payment_gateway=gateway
    )
    app.dependency_overrides[get_payout_service] = lambda: PayoutService(
        db, payment_gateway=gateway
    )
    app.dependency_overrides[
        get_alternative_suggestion_service
    ] = lambda: AlternativeSuggestionService(db, payment_gateway=gateway)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[..., Dict[str, str]]:
    def _headers(user_id: str, role: str) -> Dict[str, str]:
        token = jwt.encode(
            {"sub": user_id, "role": role},
            settings.secret_key.get_secret_value(),
            algorithm=settings.algorithm,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def customer_headers(auth_headers, customer) -> Dict[str, str]:
    return auth_headers(customer.id, "customer")


@pytest.fixture
def contractor_headers(auth_headers, contractor) -> Dict[str, str]:
    return auth_headers(contractor.user_id, "contractor")


@pytest.fixture
def admin_headers(auth_headers, admin_user) -> Dict[str, str]:
    return auth_headers(admin_user.id, "admin")
