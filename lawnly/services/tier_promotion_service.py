# lawnly/services/tier_promotion_service.py
"""
Tier promotion loop.

probation -> standard: 5+ finished jobs with an average rating of 4.5+.
standard -> premium: only once the platform has 50+ finished jobs, for
contractors with 50+ finished jobs, an average of 4.7+ and a dispute
rate under 3%. Tiers only ever go up here; demotion is the quality
loop's business.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.enums import NotificationSeverity
from ..events.side_effects import SideEffect, SweepResult, UserNotification
from ..models.booking import BookingStatus
from ..models.contractor import Contractor, ContractorTier
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

JOB_NAME = "quality.check_tier_promotions"

FINISHED_STATUSES = (
    BookingStatus.COMPLETED.value,
    BookingStatus.COMPLETED_PENDING_VERIFICATION.value,
)


@dataclass(frozen=True)
class PromotionRule:
    source: ContractorTier
    target: ContractorTier
    min_jobs: int
    min_rating: Decimal
    max_dispute_rate: Optional[Decimal] = None
    min_platform_jobs: int = 0
    title: str = ""
    message: str = ""


PROMOTION_RULES = (
    PromotionRule(
        source=ContractorTier.PROBATION,
        target=ContractorTier.STANDARD,
        min_jobs=5,
        min_rating=Decimal("4.5"),
        title="🎉 Promoted to Verified Contractor!",
        message=(
            "Congratulations! You've been promoted to Verified Contractor status. You can now "
            "accept up to 10 concurrent jobs with no maximum job value."
        ),
    ),
    PromotionRule(
        source=ContractorTier.STANDARD,
        target=ContractorTier.PREMIUM,
        min_jobs=50,
        min_rating=Decimal("4.7"),
        max_dispute_rate=Decimal("0.03"),
        min_platform_jobs=50,
        title="⭐ Promoted to Premium Contractor!",
        message=(
            "Congratulations! You've been promoted to Premium Contractor status. You're now one "
            "of our top performers and will receive priority in future features."
        ),
    ),
)


class TierPromotionService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.contractor_repository = RepositoryFactory.create_contractor_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.dispute_repository = RepositoryFactory.create_dispute_repository(db)

    def qualifies(self, contractor: Contractor, rule: PromotionRule) -> bool:
        jobs = self.booking_repository.count_completed_jobs(contractor.id, FINISHED_STATUSES)
        if jobs < rule.min_jobs:
            return False
        rating = self.booking_repository.average_rating(contractor.id)
        if rating is None or rating < rule.min_rating:
            return False
        if rule.max_dispute_rate is not None:
            disputes = self.dispute_repository.count_for_contractor(contractor.id)
            if Decimal(disputes) / Decimal(jobs) >= rule.max_dispute_rate:
                return False
        return True

    def promote(self, contractor_id: str, rule: PromotionRule, now: datetime) -> bool:
        with self.transaction():
            contractor = self.contractor_repository.get_by_id(contractor_id, for_update=True)
            if not contractor or contractor.tier != rule.source:
                return False
            if not self.qualifies(contractor, rule):
                return False
            contractor.tier = rule.target.value
            effects: List[SideEffect] = [
                UserNotification(
                    user_id=contractor.user_id,
                    title=rule.title,
                    message=rule.message,
                    severity=NotificationSeverity.SUCCESS.value,
                    send_email=True,
                )
            ]
            self.publish(effects, scope=f"promotion:{contractor.id}:{rule.target.value}")
        self.logger.info(
            f"Promoted contractor {contractor_id} {rule.source.value} → {rule.target.value}"
        )
        return True

    @BaseService.measure_operation("check_tier_promotions")
    def run(self, now: Optional[datetime] = None) -> SweepResult:
        current_time = self.now(now)
        result = SweepResult(job=JOB_NAME)
        platform_jobs = self.booking_repository.count_completed_jobs(statuses=FINISHED_STATUSES)

        for rule in PROMOTION_RULES:
            if platform_jobs < rule.min_platform_jobs:
                self.logger.info(
                    f"Skipping {rule.target.value} promotions: platform has {platform_jobs} jobs"
                )
                continue
            candidate_ids = [c.id for c in self.contractor_repository.find_by_tier(rule.source)]
            for contractor_id in candidate_ids:
                result.processed += 1
                try:
                    if self.promote(contractor_id, rule, current_time):
                        result.succeeded += 1
                except Exception as e:
                    self.logger.error(f"Promotion check failed for contractor {contractor_id}: {e}")
                    result.record_failure(contractor_id, e)

        prometheus_metrics.record_scheduled_job(JOB_NAME, result.succeeded, result.failed)
        self.log_operation(JOB_NAME, **result.to_dict())
        return result
