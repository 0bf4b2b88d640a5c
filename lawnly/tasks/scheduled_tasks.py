# lawnly/tasks/scheduled_tasks.py
"""
Celery entry points for the periodic jobs.

Each task opens its own session and hands the named job to the
``Scheduler``; per-item failures come back in the summary instead of
failing the task.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, TypedDict

from celery.utils.log import get_task_logger

from lawnly.database import SessionLocal
from lawnly.services.sweeper_service import AUTO_CANCEL_JOB, AUTO_RELEASE_JOB, Scheduler
from lawnly.tasks.celery_app import celery_app

logger = get_task_logger(__name__)


class JobSummary(TypedDict):
    job: str
    processed: int
    succeeded: int
    failed: int
    failures: List[Dict[str, str]]


def run_job(name: str) -> JobSummary:
    """Run one scheduled job against a fresh session."""
    db = SessionLocal()
    try:
        result = Scheduler(db).run(name, now=datetime.now(timezone.utc))
    finally:
        db.close()

    if result.failures:
        logger.warning("%s finished with %s failures: %s", name, result.failed, result.failures)
    else:
        logger.info("%s processed %s items", name, result.processed)
    return JobSummary(
        job=result.job,
        processed=result.processed,
        succeeded=result.succeeded,
        failed=result.failed,
        failures=list(result.failures),
    )


@celery_app.task(name=AUTO_CANCEL_JOB, max_retries=0)
def auto_cancel_stale_price_changes() -> JobSummary:
    return run_job(AUTO_CANCEL_JOB)


@celery_app.task(name=AUTO_RELEASE_JOB, max_retries=0)
def auto_release_payouts() -> JobSummary:
    return run_job(AUTO_RELEASE_JOB)


@celery_app.task(name="quality.check_thresholds", max_retries=0)
def check_quality_thresholds() -> JobSummary:
    return run_job("quality.check_thresholds")


@celery_app.task(name="quality.check_tier_promotions", max_retries=0)
def check_tier_promotions() -> JobSummary:
    return run_job("quality.check_tier_promotions")


@celery_app.task(name="quality.check_insurance_expiry", max_retries=0)
def check_insurance_expiry() -> JobSummary:
    return run_job("quality.check_insurance_expiry")
