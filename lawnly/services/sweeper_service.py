# lawnly/services/sweeper_service.py
"""
Time-based sweepers and the scheduler that runs every periodic job by name.

Each job is a function of ``now`` and the database that returns a
``SweepResult``. Items are processed one transaction at a time; a failing
item is recorded on the result and the sweep moves on.
"""

from datetime import datetime, timedelta
import logging
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import NotificationSeverity
from ..core.exceptions import NotFoundException
from ..domain.booking_state_machine import transition
from ..events.side_effects import SideEffect, SweepResult, UserNotification
from ..models.booking import AUTO_RATING_COMMENT, BookingStatus, PayoutStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..principal import SYSTEM_PRINCIPAL
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .insurance_expiry_service import InsuranceExpiryService
from .payout_service import PayoutService
from .quality_control_service import QualityControlService
from .stripe_service import StripeService
from .tier_promotion_service import TierPromotionService

logger = logging.getLogger(__name__)

AUTO_CANCEL_JOB = "sweepers.auto_cancel_stale_price_changes"
AUTO_RELEASE_JOB = "sweepers.auto_release_payouts"

AUTO_CANCEL_NOTE = "Auto-cancelled: customer did not approve price change within {days} days"


class SweeperService(BaseService):
    """Stale price-change cancellation and payout auto-release."""

    def __init__(
        self,
        db: Session,
        payout_service: Optional[PayoutService] = None,
        payment_gateway: Optional[StripeService] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.payout_service = payout_service or PayoutService(db, payment_gateway)

    # ------------------------------------------------------- stale price changes
    def cancel_stale_price_change(self, booking_id: str, now: datetime) -> List[SideEffect]:
        with self.transaction():
            booking = self.booking_repository.get_by_id(booking_id, for_update=True)
            if not booking:
                raise NotFoundException("Booking not found")
            if booking.status != BookingStatus.PRICE_CHANGE_PENDING:
                return []
            transition(booking, BookingStatus.CANCELLED)
            booking.cancelled_at = now
            booking.admin_notes = AUTO_CANCEL_NOTE.format(days=settings.price_change_approval_days)
            effects: List[SideEffect] = [
                UserNotification(
                    user_id=booking.customer_id,
                    title="Booking Auto-Cancelled",
                    message=(
                        f"Your booking for {booking.scheduled_date} was cancelled because the "
                        "updated price was not approved within "
                        f"{settings.price_change_approval_days} days."
                    ),
                    severity=NotificationSeverity.WARNING.value,
                    booking_id=booking.id,
                    send_email=True,
                )
            ]
            return self.publish(effects, scope=f"auto_cancel:{booking.id}")

    @BaseService.measure_operation("auto_cancel_stale_price_changes")
    def auto_cancel_stale_price_changes(self, now: Optional[datetime] = None) -> SweepResult:
        current_time = self.now(now)
        cutoff = current_time - timedelta(days=settings.price_change_approval_days)
        result = SweepResult(job=AUTO_CANCEL_JOB)

        booking_ids = [b.id for b in self.booking_repository.find_stale_price_changes(cutoff)]
        for booking_id in booking_ids:
            result.processed += 1
            try:
                effects = self.cancel_stale_price_change(booking_id, current_time)
            except Exception as e:
                self.logger.error(f"Auto-cancel failed for booking {booking_id}: {e}")
                result.record_failure(booking_id, e)
                continue
            if effects:
                result.succeeded += 1
                result.side_effects.extend(effects)

        return self._finish(result)

    # -------------------------------------------------------------- auto-release
    def auto_rate(self, booking_id: str, now: datetime) -> bool:
        """Stamp the system 5-star rating; False when the booking is no longer releasable."""
        with self.transaction():
            booking = self.booking_repository.get_by_id(booking_id, for_update=True)
            if not booking:
                raise NotFoundException("Booking not found")
            if (
                booking.status != BookingStatus.COMPLETED_PENDING_VERIFICATION
                or booking.payout_status != PayoutStatus.PENDING
            ):
                return False
            if booking.customer_rating is None:
                booking.customer_rating = 5
                booking.rating_comment = AUTO_RATING_COMMENT
                booking.rating_submitted_at = now
        return True

    @BaseService.measure_operation("auto_release_payouts")
    def auto_release_payouts(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Release payouts whose review window closed without a customer response.

        The rating is committed before the transfer so a failed transfer is
        retried on the next sweep without re-rating.
        """
        current_time = self.now(now)
        cutoff = current_time - timedelta(hours=settings.auto_release_hours)
        result = SweepResult(job=AUTO_RELEASE_JOB)

        booking_ids = [b.id for b in self.booking_repository.find_due_for_auto_release(cutoff)]
        for booking_id in booking_ids:
            result.processed += 1
            try:
                if not self.auto_rate(booking_id, current_time):
                    continue
                released = self.payout_service.release_payout(
                    SYSTEM_PRINCIPAL, booking_id, trigger="auto_release", now=current_time
                )
            except Exception as e:
                self.logger.error(f"Auto-release failed for booking {booking_id}: {e}")
                result.record_failure(booking_id, e)
                continue
            if released.data.get("transferred"):
                result.succeeded += 1
                result.side_effects.extend(released.side_effects)

        return self._finish(result)

    def _finish(self, result: SweepResult) -> SweepResult:
        prometheus_metrics.record_scheduled_job(result.job, result.succeeded, result.failed)
        self.log_operation(result.job, **result.to_dict())
        return result


JobRunner = Callable[[Optional[datetime]], SweepResult]


class Scheduler:
    """
    Registry of the periodic jobs by name.

    Usage:
        Scheduler(db).run("sweepers.auto_release_payouts", now=now)
    """

    def __init__(self, db: Session, payment_gateway: Optional[StripeService] = None):
        sweepers = SweeperService(db, payment_gateway=payment_gateway)
        self.jobs: Dict[str, JobRunner] = {
            AUTO_CANCEL_JOB: sweepers.auto_cancel_stale_price_changes,
            AUTO_RELEASE_JOB: sweepers.auto_release_payouts,
            "quality.check_thresholds": QualityControlService(db).run,
            "quality.check_tier_promotions": TierPromotionService(db).run,
            "quality.check_insurance_expiry": InsuranceExpiryService(db).run,
        }

    @property
    def job_names(self) -> List[str]:
        return sorted(self.jobs)

    def run(self, name: str, now: Optional[datetime] = None) -> SweepResult:
        job = self.jobs.get(name)
        if job is None:
            raise KeyError(f"Unknown scheduled job '{name}'")
        logger.info(f"Running scheduled job {name}")
        return job(now)
