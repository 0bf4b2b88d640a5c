# lawnly/core/timezone_utils.py
"""
UTC helpers.

All persisted timestamps are UTC. SQLite hands back naive datetimes, so
anything compared in Python goes through ``ensure_utc`` first.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
