# lawnly/routes/v1/disputes.py
"""
Dispute routes - API v1

Endpoints:
    POST /bookings/{booking_id} - Customer files a dispute
    POST /{dispute_id}/response - Contractor responds with their side
    POST /{dispute_id}/review - Admin starts reviewing a dispute
    POST /{dispute_id}/resolve - Admin adjudicates a dispute
    POST /bookings/{booking_id}/resolve-issues - Admin settles a contractor issue report
"""

import asyncio
import logging

from fastapi import APIRouter, Body, Depends, status
from fastapi.params import Path

from ...api.dependencies import get_current_principal, get_dispute_service
from ...core.exceptions import DomainException
from ...principal import Principal
from ...schemas.common import OperationResponse
from ...schemas.dispute import (
    DisputeContractorResponse,
    DisputeCreate,
    DisputeResolve,
    DisputeResponse,
)
from ...services.dispute_service import DisputeService
from .bookings import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["disputes-v1"])


@router.post(
    "/bookings/{booking_id}",
    response_model=DisputeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def file_dispute(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: DisputeCreate = Body(...),
    principal: Principal = Depends(get_current_principal),
    dispute_service: DisputeService = Depends(get_dispute_service),
) -> DisputeResponse:
    try:
        dispute = await asyncio.to_thread(
            dispute_service.file_dispute,
            principal,
            booking_id,
            description=payload.description,
            reason=payload.reason.value,
            suggested_refund_amount=payload.suggested_refund_amount,
            evidence_photos=payload.evidence_photos,
        )
        return DisputeResponse.model_validate(dispute)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{dispute_id}/response", response_model=DisputeResponse)
async def respond_to_dispute(
    dispute_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: DisputeContractorResponse = Body(...),
    principal: Principal = Depends(get_current_principal),
    dispute_service: DisputeService = Depends(get_dispute_service),
) -> DisputeResponse:
    try:
        dispute = await asyncio.to_thread(
            dispute_service.respond_to_dispute,
            principal,
            dispute_id,
            payload.response,
            payload.evidence_photos,
        )
        return DisputeResponse.model_validate(dispute)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{dispute_id}/review", response_model=DisputeResponse)
async def mark_under_review(
    dispute_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    dispute_service: DisputeService = Depends(get_dispute_service),
) -> DisputeResponse:
    try:
        dispute = await asyncio.to_thread(dispute_service.mark_under_review, principal, dispute_id)
        return DisputeResponse.model_validate(dispute)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{dispute_id}/resolve", response_model=OperationResponse)
async def resolve_dispute(
    dispute_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: DisputeResolve = Body(...),
    principal: Principal = Depends(get_current_principal),
    dispute_service: DisputeService = Depends(get_dispute_service),
) -> OperationResponse:
    try:
        result = await asyncio.to_thread(
            dispute_service.resolve_dispute,
            principal,
            dispute_id,
            payload.resolution.value,
            refund_percentage=payload.refund_percentage,
            admin_notes=payload.admin_notes,
        )
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/bookings/{booking_id}/resolve-issues", response_model=OperationResponse)
async def resolve_job_issues(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: DisputeResolve = Body(...),
    principal: Principal = Depends(get_current_principal),
    dispute_service: DisputeService = Depends(get_dispute_service),
) -> OperationResponse:
    try:
        result = await asyncio.to_thread(
            dispute_service.resolve_job_issues,
            principal,
            booking_id,
            payload.resolution.value,
            refund_percentage=payload.refund_percentage,
            admin_notes=payload.admin_notes,
        )
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)
