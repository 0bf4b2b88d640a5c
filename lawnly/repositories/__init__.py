"""
Repository layer for the Lawnly booking core.

Repositories encapsulate queries; services own transactions.
"""

from .alternative_suggestion_repository import AlternativeSuggestionRepository
from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .contractor_repository import ContractorRepository
from .dispute_repository import DisputeRepository
from .event_outbox_repository import EventOutboxRepository
from .factory import RepositoryFactory
from .job_photo_repository import JobPhotoRepository
from .notification_repository import NotificationRepository
from .pricing_setting_repository import PricingSettingRepository
from .user_repository import UserRepository

__all__ = [
    "AlternativeSuggestionRepository",
    "BaseRepository",
    "BookingRepository",
    "ContractorRepository",
    "DisputeRepository",
    "EventOutboxRepository",
    "JobPhotoRepository",
    "NotificationRepository",
    "PricingSettingRepository",
    "RepositoryFactory",
    "UserRepository",
]
