# lawnly/routes/v1/admin.py
"""
Admin routes - API v1

Every endpoint requires the admin role; the services enforce it.

Endpoints:
    POST /addresses/{address_id}/verify - Approve or reject a property
    POST /contractors/{contractor_id}/standing - Override a contractor's standing
    PUT /pricing-settings/{key} - Update one pricing rate
"""

import asyncio
import logging
from decimal import Decimal
from typing import Dict

from fastapi import APIRouter, Body, Depends
from fastapi.params import Path

from ...api.dependencies import (
    get_address_verification_service,
    get_current_principal,
    get_pricing_service,
    get_quality_control_service,
)
from ...core.exceptions import DomainException
from ...principal import Principal
from ...schemas.admin import (
    AddressVerificationRequest,
    PricingSettingUpdate,
    StandingOverrideRequest,
)
from ...schemas.common import OperationResponse
from ...services.address_verification_service import AddressVerificationService
from ...services.pricing_service import PricingService
from ...services.quality_control_service import QualityControlService
from .bookings import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin-v1"])


@router.post("/addresses/{address_id}/verify", response_model=OperationResponse)
async def verify_address(
    address_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: AddressVerificationRequest = Body(...),
    principal: Principal = Depends(get_current_principal),
    verification_service: AddressVerificationService = Depends(get_address_verification_service),
) -> OperationResponse:
    try:
        result = await asyncio.to_thread(
            verification_service.verify_address,
            principal,
            address_id,
            approved=payload.approved,
            square_meters=payload.square_meters,
            slope=payload.slope.value if payload.slope else None,
            tier_count=payload.tier_count,
            admin_notes=payload.admin_notes,
        )
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/contractors/{contractor_id}/standing", response_model=OperationResponse)
async def override_standing(
    contractor_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: StandingOverrideRequest = Body(...),
    principal: Principal = Depends(get_current_principal),
    quality_service: QualityControlService = Depends(get_quality_control_service),
) -> OperationResponse:
    try:
        result = await asyncio.to_thread(
            quality_service.override_standing,
            principal,
            contractor_id,
            payload.status.value,
            payload.reason,
        )
        return OperationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/pricing-settings/{key}", response_model=Dict[str, Decimal])
async def update_pricing_setting(
    key: str = Path(..., pattern=r"^[a-z_]{1,64}$"),
    payload: PricingSettingUpdate = Body(...),
    principal: Principal = Depends(get_current_principal),
    pricing_service: PricingService = Depends(get_pricing_service),
) -> Dict[str, Decimal]:
    try:
        return await asyncio.to_thread(
            pricing_service.update_setting, principal, key, payload.value, payload.description
        )
    except DomainException as e:
        handle_domain_exception(e)
