# lawnly/services/quality_control_service.py
"""
Quality Control Loop.

Runs on a schedule over every active, approved contractor. Each run
refreshes the contractor's rolling metrics, evaluates their standing
most-severe-first and applies only the worst tier matched. Every
contractor is processed in its own transaction so one failure is logged
and counted without aborting the rest of the batch.

Admins get one digest per run covering every contractor that needs a
review or was suspended.
"""

from datetime import datetime, timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import NotificationSeverity
from ..core.exceptions import NotFoundException, ValidationException
from ..domain.bounded_log import BoundedLog, QualityLogEntry
from ..domain.quality_policy import QualityMetrics, StandingDecision, evaluate_standing
from ..events.side_effects import (
    AdminAlert,
    OperationResult,
    SideEffect,
    SweepResult,
    UserNotification,
)
from ..models.contractor import Contractor, SuspensionStatus
from ..models.dispute import DisputeRaiser
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..principal import Principal
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

JOB_NAME = "quality.check_thresholds"

CONTRACTOR_MESSAGES = {
    SuspensionStatus.WARNING: (
        "⚠️ Quality Alert",
        "Your account has a quality warning: {reasons}. Please improve to avoid further action.",
    ),
    SuspensionStatus.REVIEW_REQUIRED: (
        "🔍 Account Under Review",
        "Your account is under review due to quality concerns. "
        "Our support team will contact you shortly.",
    ),
    SuspensionStatus.SUSPENDED: (
        "🚫 Account Suspended",
        "Your account has been suspended: {reasons}. Contact support for assistance.",
    ),
}


def append_history(
    contractor: Contractor, status: SuspensionStatus, reason: str, at: datetime
) -> None:
    """Record a standing entry; warnings and reviews keep separate bounded logs."""
    entry = QualityLogEntry.create(status.value, reason, at)
    if status == SuspensionStatus.WARNING:
        log = BoundedLog(settings.quality_history_limit, contractor.quality_warnings)
        log.append(entry)
        contractor.quality_warnings = log.to_list()
    else:
        log = BoundedLog(settings.quality_history_limit, contractor.quality_reviews)
        log.append(entry)
        contractor.quality_reviews = log.to_list()


class QualityControlService(BaseService):
    """Periodic contractor standing evaluation and admin overrides."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.contractor_repository = RepositoryFactory.create_contractor_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.dispute_repository = RepositoryFactory.create_dispute_repository(db)

    def collect_metrics(self, contractor: Contractor, now: datetime) -> QualityMetrics:
        bookings = self.booking_repository
        week_ago = now - timedelta(days=7)
        return QualityMetrics(
            completed_jobs=bookings.count_completed_jobs(contractor.id),
            disputed_jobs=self.dispute_repository.count_for_contractor(
                contractor.id, raised_by=DisputeRaiser.CUSTOMER
            ),
            cancellations_7d=bookings.count_cancellations_since(contractor.id, week_ago),
            cancellations_14d=bookings.count_cancellations_since(
                contractor.id, now - timedelta(days=14)
            ),
            cancellations_30d=bookings.count_cancellations_since(
                contractor.id, now - timedelta(days=30)
            ),
            one_star_ratings_7d=bookings.count_ratings_since(contractor.id, 1, week_ago),
            average_rating=bookings.average_rating(contractor.id),
        )

    def refresh_contractor_metrics(self, contractor: Contractor, metrics: QualityMetrics) -> None:
        contractor.completed_jobs_count = metrics.completed_jobs
        contractor.disputed_jobs_count = metrics.disputed_jobs
        contractor.cancelled_jobs_count = self.booking_repository.count_cancelled_jobs(
            contractor.id
        )
        contractor.average_rating = metrics.average_rating
        contractor.total_revenue = self.booking_repository.total_released_revenue(contractor.id)
        contractor.last_active_at = self.booking_repository.last_activity_at(contractor.id)

    def evaluate_contractor(self, contractor_id: str, now: datetime) -> Optional[str]:
        """
        Apply this run's standing to one contractor.

        Returns a digest line when admins need to look at the contractor.
        """
        with self.transaction():
            contractor = self.contractor_repository.get_by_id(contractor_id, for_update=True)
            if not contractor:
                raise NotFoundException("Contractor not found")
            metrics = self.collect_metrics(contractor, now)
            self.refresh_contractor_metrics(contractor, metrics)

            decision = evaluate_standing(metrics)
            previous = SuspensionStatus(
                contractor.suspension_status or SuspensionStatus.ACTIVE.value
            )
            effects = self._apply_decision(contractor, previous, decision, now)
            self.publish(effects, scope=f"quality:{contractor.id}:{now.date().isoformat()}")

        if decision.status in (SuspensionStatus.REVIEW_REQUIRED, SuspensionStatus.SUSPENDED):
            if decision.status == SuspensionStatus.SUSPENDED:
                label = "Auto-Suspended"
            else:
                label = "Requires Review"
            return (
                f"{contractor.business_name or 'Contractor'} (ID: {contractor.id}) {label}: "
                + "; ".join(decision.reasons)
            )
        return None

    def _apply_decision(
        self,
        contractor: Contractor,
        previous: SuspensionStatus,
        decision: StandingDecision,
        now: datetime,
    ) -> List[SideEffect]:
        effects: List[SideEffect] = []
        if decision.is_active:
            if previous != SuspensionStatus.ACTIVE:
                contractor.suspension_status = SuspensionStatus.ACTIVE.value
                effects.append(
                    UserNotification(
                        user_id=contractor.user_id,
                        title="✅ Account In Good Standing",
                        message=(
                            "Your quality metrics are back within our standards. "
                            "Thanks for the improvement!"
                        ),
                        severity=NotificationSeverity.SUCCESS.value,
                    )
                )
                self.logger.info(f"Contractor {contractor.id} standing restored to active")
            return effects

        reason = "; ".join(decision.reasons)
        append_history(contractor, decision.status, reason, now)
        contractor.suspension_status = decision.status.value
        if decision.status == SuspensionStatus.SUSPENDED:
            contractor.is_active = False
            contractor.suspended_at = now
            contractor.suspension_reason = reason

        if decision.status != previous:
            title, template = CONTRACTOR_MESSAGES[decision.status]
            effects.append(
                UserNotification(
                    user_id=contractor.user_id,
                    title=title,
                    message=template.format(reasons=reason),
                    severity=(
                        NotificationSeverity.ERROR.value
                        if decision.status == SuspensionStatus.SUSPENDED
                        else NotificationSeverity.WARNING.value
                    ),
                    send_email=decision.status == SuspensionStatus.SUSPENDED,
                )
            )
        self.logger.info(
            f"Contractor {contractor.id} status: {previous.value} → "
            f"{decision.status.value} ({reason})"
        )
        return effects

    @BaseService.measure_operation("check_quality_thresholds")
    def run(self, now: Optional[datetime] = None) -> SweepResult:
        current_time = self.now(now)
        result = SweepResult(job=JOB_NAME)
        digest: List[str] = []

        contractor_ids = [c.id for c in self.contractor_repository.find_active_approved()]
        for contractor_id in contractor_ids:
            result.processed += 1
            try:
                line = self.evaluate_contractor(contractor_id, current_time)
            except Exception as e:
                self.logger.error(f"Quality check failed for contractor {contractor_id}: {e}")
                result.record_failure(contractor_id, e)
                continue
            result.succeeded += 1
            if line:
                digest.append(line)

        if digest:
            alert = AdminAlert(
                title=f"🔍 {len(digest)} Quality Alert(s) Require Attention",
                message="\n".join(digest),
                details={"contractors": len(digest)},
            )
            with self.transaction():
                result.side_effects.extend(
                    self.publish([alert], scope=f"quality_digest:{current_time.date().isoformat()}")
                )

        prometheus_metrics.record_scheduled_job(JOB_NAME, result.succeeded, result.failed)
        self.log_operation(JOB_NAME, **result.to_dict())
        return result

    @BaseService.measure_operation("override_standing")
    def override_standing(
        self,
        principal: Principal,
        contractor_id: str,
        status: str,
        reason: str,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """Admin sets a contractor's standing directly, outside the scheduled loop."""
        principal.require_admin()
        try:
            target = SuspensionStatus(status)
        except ValueError:
            raise ValidationException(f"Unknown standing '{status}'", code="INVALID_STANDING")
        text = (reason or "").strip()
        if not text:
            raise ValidationException("A reason is required", code="REASON_REQUIRED")
        current_time = self.now(now)

        with self.transaction():
            contractor = self.contractor_repository.get_by_id(contractor_id, for_update=True)
            if not contractor:
                raise NotFoundException("Contractor not found")
            previous = contractor.suspension_status
            append_history(contractor, target, f"Admin override: {text}", current_time)
            contractor.suspension_status = target.value
            if target == SuspensionStatus.SUSPENDED:
                contractor.is_active = False
                contractor.suspended_at = current_time
                contractor.suspension_reason = text
            else:
                contractor.is_active = True
                contractor.suspended_at = None
                contractor.suspension_reason = None

            effects: List[SideEffect] = [
                UserNotification(
                    user_id=contractor.user_id,
                    title="Account Standing Updated",
                    message=f"An administrator changed your account standing to "
                    f"{target.value.replace('_', ' ')}: {text}",
                    severity=(
                        NotificationSeverity.ERROR.value
                        if target == SuspensionStatus.SUSPENDED
                        else NotificationSeverity.INFO.value
                    ),
                    send_email=True,
                )
            ]
            self.publish(
                effects, scope=f"override_standing:{contractor.id}:{int(current_time.timestamp())}"
            )

        self.log_operation(
            "standing_overridden",
            contractor_id=contractor_id,
            previous=previous,
            status=target.value,
            admin=principal.user_id,
        )
        return OperationResult(
            message="Standing updated",
            data={"contractor_id": contractor_id, "suspension_status": target.value},
            side_effects=effects,
        )
