# lawnly/repositories/factory.py
"""
Repository Factory for the Lawnly booking core.

Centralizes repository creation so services receive consistently
initialized data access objects.
"""

from typing import TYPE_CHECKING, Type

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

if TYPE_CHECKING:
    from .alternative_suggestion_repository import AlternativeSuggestionRepository
    from .booking_repository import BookingRepository
    from .contractor_repository import ContractorRepository
    from .dispute_repository import DisputeRepository
    from .event_outbox_repository import EventOutboxRepository
    from .job_photo_repository import JobPhotoRepository
    from .notification_repository import NotificationRepository
    from .pricing_setting_repository import PricingSettingRepository
    from .user_repository import UserRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_base_repository(db: Session, model: Type) -> BaseRepository:
        return BaseRepository(db, model)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_contractor_repository(db: Session) -> "ContractorRepository":
        from .contractor_repository import ContractorRepository

        return ContractorRepository(db)

    @staticmethod
    def create_dispute_repository(db: Session) -> "DisputeRepository":
        from .dispute_repository import DisputeRepository

        return DisputeRepository(db)

    @staticmethod
    def create_alternative_suggestion_repository(
        db: Session,
    ) -> "AlternativeSuggestionRepository":
        from .alternative_suggestion_repository import AlternativeSuggestionRepository

        return AlternativeSuggestionRepository(db)

    @staticmethod
    def create_pricing_setting_repository(db: Session) -> "PricingSettingRepository":
        from .pricing_setting_repository import PricingSettingRepository

        return PricingSettingRepository(db)

    @staticmethod
    def create_job_photo_repository(db: Session) -> "JobPhotoRepository":
        from .job_photo_repository import JobPhotoRepository

        return JobPhotoRepository(db)

    @staticmethod
    def create_user_repository(db: Session) -> "UserRepository":
        from .user_repository import UserRepository

        return UserRepository(db)

    @staticmethod
    def create_notification_repository(db: Session) -> "NotificationRepository":
        from .notification_repository import NotificationRepository

        return NotificationRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> "EventOutboxRepository":
        from .event_outbox_repository import EventOutboxRepository

        return EventOutboxRepository(db)
