# lawnly/tasks/beat_schedule.py
"""
Celery Beat schedule for the Lawnly booking core.

Sweepers run on short intervals so time-expired bookings are picked up
promptly; the contractor standing jobs run once a day overnight (UTC).
"""

from datetime import timedelta
from typing import Any, Dict

from celery.schedules import crontab

CELERYBEAT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    "auto-cancel-stale-price-changes": {
        "task": "sweepers.auto_cancel_stale_price_changes",
        "schedule": crontab(minute=0),  # Hourly
        "options": {"queue": "payments", "priority": 6},
    },
    "auto-release-payouts": {
        "task": "sweepers.auto_release_payouts",
        "schedule": crontab(minute="*/30"),
        "options": {"queue": "payments", "priority": 8},
    },
    "check-quality-thresholds": {
        "task": "quality.check_thresholds",
        "schedule": crontab(hour=16, minute=0),
        "options": {"queue": "maintenance", "priority": 4},
    },
    "check-tier-promotions": {
        "task": "quality.check_tier_promotions",
        "schedule": crontab(hour=16, minute=30),
        "options": {"queue": "maintenance", "priority": 3},
    },
    "check-insurance-expiry": {
        "task": "quality.check_insurance_expiry",
        "schedule": crontab(hour=17, minute=0),
        "options": {"queue": "maintenance", "priority": 4},
    },
    "dispatch-outbox": {
        "task": "outbox.dispatch_pending",
        "schedule": timedelta(minutes=1),
        "options": {"queue": "notifications", "priority": 7},
    },
}

# Faster outbox polling while developing locally
DEVELOPMENT_OVERRIDES: Dict[str, Dict[str, Any]] = {
    "dispatch-outbox": {"schedule": timedelta(seconds=15)},
}


def get_beat_schedule(environment: str = "production") -> Dict[str, Dict[str, Any]]:
    """Return the beat schedule for ``environment``."""
    schedule = {name: dict(entry) for name, entry in CELERYBEAT_SCHEDULE.items()}
    if environment in ("development", "local"):
        for name, override in DEVELOPMENT_OVERRIDES.items():
            schedule[name].update(override)
    return schedule
