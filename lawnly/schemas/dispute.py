# lawnly/schemas/dispute.py
"""Dispute filing, response and adjudication schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.dispute import DisputeReason, DisputeResolution
from ._strict_base import StrictRequestModel


class DisputeCreate(StrictRequestModel):
    description: str = Field(..., min_length=1, max_length=5000)
    reason: DisputeReason = DisputeReason.OTHER
    suggested_refund_amount: Optional[Decimal] = Field(default=None, ge=0)
    evidence_photos: List[str] = Field(default_factory=list)


class DisputeContractorResponse(StrictRequestModel):
    response: str = Field(..., min_length=1, max_length=5000)
    evidence_photos: List[str] = Field(default_factory=list)


class DisputeResolve(StrictRequestModel):
    """Admin adjudication; the percentage only applies to partial refunds."""

    resolution: DisputeResolution
    refund_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    admin_notes: Optional[str] = Field(default=None, max_length=2000)


class DisputeResponse(BaseModel):
    id: str
    booking_id: str
    raised_by: str
    raised_by_role: str
    description: str
    dispute_reason: str
    suggested_refund_amount: Optional[Decimal] = None
    contractor_response: Optional[str] = None
    is_post_payment: bool
    status: str
    resolution: Optional[str] = None
    refund_percentage: Optional[int] = None
    refund_amount: Optional[Decimal] = None
    refund_funded_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
