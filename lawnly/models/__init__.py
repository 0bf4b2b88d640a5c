"""
Database models for the Lawnly booking core.

- Users and their property addresses
- Contractors and their quality standing
- Bookings, disputes and alternative time suggestions
- Job photo references and pricing settings
- Event outbox and in-app notifications
"""

from .address import Address, AddressStatus, SlopeType
from .alternative_suggestion import AlternativeSuggestion, SuggestionStatus
from .booking import (
    Booking,
    BookingStatus,
    GrassLength,
    PaymentStatus,
    PayoutStatus,
    TimeSlot,
)
from .contractor import ApprovalStatus, Contractor, ContractorTier, SuspensionStatus
from .dispute import (
    Dispute,
    DisputeRaiser,
    DisputeReason,
    DisputeResolution,
    DisputeStatus,
    RefundFunding,
)
from .event_outbox import EventOutbox, EventOutboxStatus
from .job_photo import JobPhoto, PhotoType
from .notification import Notification
from .pricing_setting import DEFAULT_PRICING_SETTINGS, PricingSetting
from .user import User

__all__ = [
    "Address",
    "AddressStatus",
    "AlternativeSuggestion",
    "ApprovalStatus",
    "Booking",
    "BookingStatus",
    "Contractor",
    "ContractorTier",
    "DEFAULT_PRICING_SETTINGS",
    "Dispute",
    "DisputeRaiser",
    "DisputeReason",
    "DisputeResolution",
    "DisputeStatus",
    "EventOutbox",
    "EventOutboxStatus",
    "GrassLength",
    "JobPhoto",
    "Notification",
    "PaymentStatus",
    "PayoutStatus",
    "PhotoType",
    "PricingSetting",
    "RefundFunding",
    "SlopeType",
    "SuggestionStatus",
    "SuspensionStatus",
    "TimeSlot",
    "User",
]
