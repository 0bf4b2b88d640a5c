# lawnly/routes/v1/health.py
"""
Health check endpoints for monitoring and load balancer probes.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any, Dict

from fastapi import APIRouter, Response, status
import redis
from sqlalchemy import text

from ...core.config import settings
from ...database import SessionLocal, get_db_pool_status

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "service": "lawnly-core",
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "db_pool": get_db_pool_status(),
    }


def _db_probe() -> None:
    with SessionLocal() as session:
        session.execute(text("SELECT 1"))
        session.rollback()


def _broker_probe() -> None:
    if not settings.redis_url:
        raise RuntimeError("Redis URL not configured")
    client = redis.Redis.from_url(settings.redis_url, socket_connect_timeout=2)
    try:
        client.ping()
    finally:
        client.close()


@router.get("/ready")
async def ready_probe(response_obj: Response) -> Dict[str, str]:
    try:
        await asyncio.to_thread(_db_probe)
    except Exception:
        logger.warning("Readiness probe: database not ready", exc_info=True)
        response_obj.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "db_not_ready"}

    try:
        await asyncio.to_thread(_broker_probe)
    except Exception:
        logger.warning("Readiness probe: broker not ready", exc_info=True)
        response_obj.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "broker_not_ready"}

    return {"status": "ok"}
