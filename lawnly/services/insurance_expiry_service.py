# lawnly/services/insurance_expiry_service.py
"""
Insurance expiry loop.

Daily check of approved contractors' public liability insurance:

- expired: suspended and deactivated, admins told to reallocate jobs
- expiring within 7 days: deactivated with a warning standing
- expiring within 30 days: renewal reminder
"""

from datetime import date, datetime, timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.enums import NotificationSeverity
from ..events.side_effects import AdminAlert, SideEffect, SweepResult, UserNotification
from ..models.contractor import Contractor, SuspensionStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .quality_control_service import append_history

logger = logging.getLogger(__name__)

JOB_NAME = "quality.check_insurance_expiry"

RESTRICT_WITHIN_DAYS = 7
REMIND_WITHIN_DAYS = 30


class InsuranceExpiryService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.contractor_repository = RepositoryFactory.create_contractor_repository(db)

    def check_contractor(self, contractor_id: str, today: date, now: datetime) -> Optional[str]:
        """Returns the action taken, if any."""
        with self.transaction():
            contractor = self.contractor_repository.get_by_id(contractor_id, for_update=True)
            if not contractor:
                return None
            days = contractor.days_until_insurance_expiry(today)
            if days is None:
                return None

            if days <= 0 and contractor.is_active:
                action = "expired"
                effects = self._suspend_expired(contractor, now)
            elif 0 < days <= RESTRICT_WITHIN_DAYS and contractor.is_active:
                action = "restricted"
                effects = self._restrict(contractor, days, now)
            elif RESTRICT_WITHIN_DAYS < days <= REMIND_WITHIN_DAYS:
                action = "reminded"
                effects = [
                    UserNotification(
                        user_id=contractor.user_id,
                        title="📋 Insurance Renewal Reminder",
                        message=(
                            f"Your insurance expires in {days} days "
                            f"({contractor.insurance_expiry_date:%d/%m/%Y}). Please renew before "
                            "expiry to avoid service interruption."
                        ),
                        send_email=True,
                    )
                ]
            else:
                return None
            self.publish(effects, scope=f"insurance:{contractor.id}:{action}:{today.isoformat()}")
        return action

    def _suspend_expired(self, contractor: Contractor, now: datetime) -> List[SideEffect]:
        contractor.is_active = False
        contractor.suspension_status = SuspensionStatus.SUSPENDED.value
        contractor.suspension_reason = "Insurance expired"
        contractor.suspended_at = now
        append_history(contractor, SuspensionStatus.SUSPENDED, "Insurance expired", now)
        return [
            UserNotification(
                user_id=contractor.user_id,
                title="⛔ Account Suspended - Insurance Expired",
                message=(
                    "Your insurance has expired and your account has been suspended. Please upload "
                    "a renewed certificate to continue accepting jobs."
                ),
                severity=NotificationSeverity.ERROR.value,
                send_email=True,
            ),
            AdminAlert(
                title="🚨 Contractor Insurance Expired",
                message=(
                    f"{contractor.business_name or 'Unknown'}'s insurance has expired. Account "
                    "suspended. Manual review needed to reallocate any assigned jobs."
                ),
                details={"contractor_id": contractor.id},
            ),
        ]

    def _restrict(self, contractor: Contractor, days: int, now: datetime) -> List[SideEffect]:
        contractor.is_active = False
        contractor.suspension_status = SuspensionStatus.WARNING.value
        contractor.suspension_reason = f"Insurance expiring within {RESTRICT_WITHIN_DAYS} days"
        contractor.suspended_at = now
        append_history(contractor, SuspensionStatus.WARNING, contractor.suspension_reason, now)
        return [
            UserNotification(
                user_id=contractor.user_id,
                title="⚠️ Insurance Expiring - Account Restricted",
                message=(
                    f"Your insurance expires in {days} days. You've been suspended from accepting "
                    "new jobs until you renew."
                ),
                severity=NotificationSeverity.WARNING.value,
                send_email=True,
            )
        ]

    @BaseService.measure_operation("check_insurance_expiry")
    def run(self, now: Optional[datetime] = None) -> SweepResult:
        current_time = self.now(now)
        today = current_time.date()
        result = SweepResult(job=JOB_NAME)
        horizon = today + timedelta(days=REMIND_WITHIN_DAYS)
        contractor_ids = [
            c.id for c in self.contractor_repository.find_with_insurance_expiring_by(horizon)
        ]
        for contractor_id in contractor_ids:
            result.processed += 1
            try:
                action = self.check_contractor(contractor_id, today, current_time)
            except Exception as e:
                self.logger.error(f"Insurance check failed for contractor {contractor_id}: {e}")
                result.record_failure(contractor_id, e)
                continue
            if action:
                result.succeeded += 1
                self.logger.info(f"Insurance {action} for contractor {contractor_id}")

        prometheus_metrics.record_scheduled_job(JOB_NAME, result.succeeded, result.failed)
        self.log_operation(JOB_NAME, **result.to_dict())
        return result
