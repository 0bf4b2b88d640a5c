# lawnly/api/dependencies/__init__.py
"""
Centralized dependency injection for FastAPI routes.
"""

from .auth import get_current_principal
from ...database import get_db
from .services import (
    get_acceptance_service,
    get_address_verification_service,
    get_alternative_suggestion_service,
    get_booking_lifecycle_service,
    get_completion_service,
    get_dispute_service,
    get_payout_service,
    get_pricing_service,
    get_quality_control_service,
)

__all__ = [
    "get_acceptance_service",
    "get_address_verification_service",
    "get_alternative_suggestion_service",
    "get_booking_lifecycle_service",
    "get_completion_service",
    "get_current_principal",
    "get_db",
    "get_dispute_service",
    "get_payout_service",
    "get_pricing_service",
    "get_quality_control_service",
]
