# lawnly/schemas/booking.py
"""
Booking schemas for the Lawnly booking core.

Request models forbid unknown fields; response models read straight from
ORM rows.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.booking import GrassLength, TimeSlot
from ._strict_base import StrictRequestModel


class QuoteRequest(StrictRequestModel):
    address_id: str
    service_date: date
    grass_length: GrassLength = GrassLength.SHORT
    clippings_removal: bool = False
    is_public_holiday: bool = False


class QuoteResponse(BaseModel):
    address_id: str
    is_verified: bool
    is_preliminary: bool
    breakdown: Dict[str, Any]
    total: float


class BookingCreate(StrictRequestModel):
    """Schema for creating a booking at the quoted price."""

    address_id: str
    scheduled_date: date
    time_slot: TimeSlot
    grass_length: GrassLength = GrassLength.SHORT
    clippings_removal: bool = False
    is_public_holiday: bool = False
    preferred_contractor_id: Optional[str] = None


class BookingCancel(StrictRequestModel):
    """Schema for cancelling a booking."""

    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("reason")
    @classmethod
    def clean_reason(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class SuggestAlternativeRequest(StrictRequestModel):
    suggested_date: date
    suggested_time_slot: TimeSlot


class CompleteJobRequest(StrictRequestModel):
    """Completion report; any issue tag moves the job to admin review."""

    issues: List[str] = Field(default_factory=list)
    issue_notes: Optional[str] = Field(default=None, max_length=2000)
    issue_photos: List[str] = Field(default_factory=list)


class ApproveJobRequest(StrictRequestModel):
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=1000)


class RatingReplyRequest(StrictRequestModel):
    response: str = Field(..., min_length=1, max_length=1000)


class BookingResponse(BaseModel):
    """Booking as seen by its customer, contractor or an admin."""

    id: str
    customer_id: str
    address_id: str
    contractor_id: Optional[str] = None
    scheduled_date: date
    time_slot: str
    grass_length: str
    clippings_removal: bool
    is_weekend: bool
    is_public_holiday: bool
    total_price: Decimal
    original_price: Optional[Decimal] = None
    quote_breakdown: Optional[Dict[str, Any]] = None
    status: str
    payment_status: str
    payout_status: Optional[str] = None
    customer_rating: Optional[int] = None
    rating_comment: Optional[str] = None
    contractor_rating_response: Optional[str] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AlternativeSuggestionResponse(BaseModel):
    id: str
    booking_id: str
    contractor_id: str
    suggested_date: date
    suggested_time_slot: str
    status: str
    responded_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class JobPhotoResponse(BaseModel):
    id: str
    photo_type: str
    url: str
    expires_at: str
