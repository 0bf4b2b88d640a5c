# lawnly/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets fresh service instances bound to its database session;
services that move money share one payout service so the gateway is
created once per request.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.acceptance_service import AcceptanceService
from ...services.address_verification_service import AddressVerificationService
from ...services.alternative_suggestion_service import AlternativeSuggestionService
from ...services.booking_lifecycle_service import BookingLifecycleService
from ...services.completion_service import CompletionService
from ...services.dispute_service import DisputeService
from ...services.payout_service import PayoutService
from ...services.pricing_service import PricingService
from ...services.quality_control_service import QualityControlService
from ...database import get_db


def get_pricing_service(db: Session = Depends(get_db)) -> PricingService:
    return PricingService(db)


def get_acceptance_service(db: Session = Depends(get_db)) -> AcceptanceService:
    return AcceptanceService(db)


def get_booking_lifecycle_service(db: Session = Depends(get_db)) -> BookingLifecycleService:
    return BookingLifecycleService(db)


def get_address_verification_service(
    db: Session = Depends(get_db),
) -> AddressVerificationService:
    return AddressVerificationService(db)


def get_alternative_suggestion_service(
    db: Session = Depends(get_db),
) -> AlternativeSuggestionService:
    return AlternativeSuggestionService(db)


def get_payout_service(db: Session = Depends(get_db)) -> PayoutService:
    return PayoutService(db)


def get_completion_service(
    db: Session = Depends(get_db),
    payout_service: PayoutService = Depends(get_payout_service),
) -> CompletionService:
    return CompletionService(db, payout_service=payout_service)


def get_dispute_service(
    db: Session = Depends(get_db),
    payout_service: PayoutService = Depends(get_payout_service),
) -> DisputeService:
    return DisputeService(db, payout_service=payout_service)


def get_quality_control_service(db: Session = Depends(get_db)) -> QualityControlService:
    return QualityControlService(db)
