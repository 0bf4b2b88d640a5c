# lawnly/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to the booking services.

Endpoints:
    POST /quote - Price a property for a service date
    POST / - Create a booking at the quoted price
    POST /{booking_id}/cancel - Cancel a booking
    POST /{booking_id}/price-change/approve - Customer accepts the verified price
    POST /{booking_id}/price-change/decline - Customer declines the verified price
    POST /{booking_id}/accept - Contractor accepts and the customer is charged
    GET /{booking_id}/alternatives - List alternative time suggestions
    POST /{booking_id}/alternatives - Contractor suggests another time
    POST /alternatives/{suggestion_id}/accept - Customer accepts a suggestion
    POST /alternatives/{suggestion_id}/decline - Customer declines a suggestion
    POST /{booking_id}/complete - Contractor marks the job complete
    POST /{booking_id}/approve - Customer approves the job and rates it
    POST /{booking_id}/rating-reply - Contractor replies to the rating
    GET /{booking_id}/photos - Signed URLs for job photos
    POST /{booking_id}/payout/release - Release the contractor payout
"""

import asyncio
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, status
from fastapi.params import Path

from ...api.dependencies import (
    get_acceptance_service,
    get_address_verification_service,
    get_alternative_suggestion_service,
    get_booking_lifecycle_service,
    get_completion_service,
    get_current_principal,
    get_payout_service,
    get_pricing_service,
)
from ...core.exceptions import DomainException
from ...principal import Principal
from ...schemas.booking import (
    AlternativeSuggestionResponse,
    ApproveJobRequest,
    BookingCancel,
    BookingCreate,
    BookingResponse,
    CompleteJobRequest,
    JobPhotoResponse,
    QuoteRequest,
    QuoteResponse,
    RatingReplyRequest,
    SuggestAlternativeRequest,
)
from ...schemas.common import OperationResponse
from ...services.acceptance_service import AcceptanceService
from ...services.address_verification_service import AddressVerificationService
from ...services.alternative_suggestion_service import AlternativeSuggestionService
from ...services.booking_lifecycle_service import BookingLifecycleService
from ...services.completion_service import CompletionService
from ...services.payout_service import PayoutService
from ...services.pricing_service import PricingService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    raise exc.to_http_exception()


@router.post("/quote", response_model=QuoteResponse)
async def calculate_quote(
    payload: QuoteRequest = Body(...),
    principal: Principal = Depends(get_current_principal),
    pricing_service: PricingService = Depends(get_pricing_service),
) -> QuoteResponse:
    try:
        result = await asyncio.to_thread(
            pricing_service.calculate_quote,
            principal,
            address_id=payload.address_id,
            service_date=payload.service_date,
            grass_length=payload.grass_length.value,
            clippings_removal=payload.clippings_removal,
            is_public_holiday=payload.is_public_holiday,
        )
        return QuoteResponse(**result.to_dict())
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate = Body(...),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.create_booking,
            principal,
            address_id=payload.address_id,
            scheduled_date=payload.scheduled_date,
            time_slot=payload.time_slot.value,
            grass_length=payload.grass_length.value,
            clippings_removal=payload.clippings_removal,
            is_public_holiday=payload.is_public_holiday,
            preferred_contractor_id=payload.preferred_contractor_id,
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/cancel", response_model=OperationResponse)
async def cancel_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: Optional[BookingCancel] = Body(default=None),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> OperationResponse:
    reason = payload.reason if payload else None
    try:
        result = await asyncio.to_thread(
            booking_service.cancel_booking, principal, booking_id, reason
        )
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/price-change/approve", response_model=OperationResponse)
async def approve_price_change(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    verification_service: AddressVerificationService = Depends(get_address_verification_service),
) -> OperationResponse:
    try:
        result = await asyncio.to_thread(
            verification_service.approve_price_change, principal, booking_id
        )
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/price-change/decline", response_model=OperationResponse)
async def decline_price_change(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    verification_service: AddressVerificationService = Depends(get_address_verification_service),
) -> OperationResponse:
    try:
        result = await asyncio.to_thread(
            verification_service.decline_price_change, principal, booking_id
        )
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/accept", response_model=OperationResponse)
async def accept_job(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    acceptance_service: AcceptanceService = Depends(get_acceptance_service),
) -> OperationResponse:
    try:
        result = await asyncio.to_thread(acceptance_service.accept_job, principal, booking_id)
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{booking_id}/alternatives", response_model=List[AlternativeSuggestionResponse])
async def list_alternatives(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    suggestion_service: AlternativeSuggestionService = Depends(get_alternative_suggestion_service),
) -> List[AlternativeSuggestionResponse]:
    try:
        suggestions = await asyncio.to_thread(
            suggestion_service.list_for_booking, principal, booking_id
        )
        return [AlternativeSuggestionResponse.model_validate(s) for s in suggestions]
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/{booking_id}/alternatives",
    response_model=AlternativeSuggestionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def suggest_alternative(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: SuggestAlternativeRequest = Body(...),
    principal: Principal = Depends(get_current_principal),
    suggestion_service: AlternativeSuggestionService = Depends(get_alternative_suggestion_service),
) -> AlternativeSuggestionResponse:
    try:
        suggestion = await asyncio.to_thread(
            suggestion_service.suggest_alternative,
            principal,
            booking_id,
            suggested_date=payload.suggested_date,
            suggested_time_slot=payload.suggested_time_slot.value,
        )
        return AlternativeSuggestionResponse.model_validate(suggestion)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/alternatives/{suggestion_id}/accept", response_model=OperationResponse)
async def accept_alternative(
    suggestion_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    suggestion_service: AlternativeSuggestionService = Depends(get_alternative_suggestion_service),
) -> OperationResponse:
    try:
        result = await asyncio.to_thread(
            suggestion_service.accept_suggestion, principal, suggestion_id
        )
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/alternatives/{suggestion_id}/decline", response_model=OperationResponse)
async def decline_alternative(
    suggestion_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    suggestion_service: AlternativeSuggestionService = Depends(get_alternative_suggestion_service),
) -> OperationResponse:
    try:
        result = await asyncio.to_thread(
            suggestion_service.decline_suggestion, principal, suggestion_id
        )
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/complete", response_model=OperationResponse)
async def complete_job(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: Optional[CompleteJobRequest] = Body(default=None),
    principal: Principal = Depends(get_current_principal),
    completion_service: CompletionService = Depends(get_completion_service),
) -> OperationResponse:
    payload = payload or CompleteJobRequest()
    try:
        result = await asyncio.to_thread(
            completion_service.complete_job,
            principal,
            booking_id,
            issues=payload.issues,
            issue_notes=payload.issue_notes,
            issue_photos=payload.issue_photos,
        )
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/approve", response_model=OperationResponse)
async def approve_job(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: Optional[ApproveJobRequest] = Body(default=None),
    principal: Principal = Depends(get_current_principal),
    completion_service: CompletionService = Depends(get_completion_service),
) -> OperationResponse:
    payload = payload or ApproveJobRequest()
    try:
        result = await asyncio.to_thread(
            completion_service.approve_job,
            principal,
            booking_id,
            rating=payload.rating,
            comment=payload.comment,
        )
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/rating-reply", response_model=BookingResponse)
async def reply_to_rating(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: RatingReplyRequest = Body(...),
    principal: Principal = Depends(get_current_principal),
    completion_service: CompletionService = Depends(get_completion_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            completion_service.reply_to_rating, principal, booking_id, payload.response
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{booking_id}/photos", response_model=List[JobPhotoResponse])
async def list_job_photos(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    completion_service: CompletionService = Depends(get_completion_service),
) -> List[JobPhotoResponse]:
    try:
        photos = await asyncio.to_thread(completion_service.list_job_photos, principal, booking_id)
        return [JobPhotoResponse(**photo) for photo in photos]
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/payout/release", response_model=OperationResponse)
async def release_payout(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    payout_service: PayoutService = Depends(get_payout_service),
) -> OperationResponse:
    trigger = "admin" if principal.is_admin else "approval"
    try:
        result = await asyncio.to_thread(
            payout_service.release_payout, principal, booking_id, trigger=trigger
        )
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)
