# lawnly/tasks/celery_app.py
"""
Celery application for the Lawnly booking core.

Redis is both broker and result backend. Three queues split the work:
``payments`` for the money-moving sweepers, ``maintenance`` for the daily
quality jobs and ``notifications`` for outbox delivery.
"""

import logging
import os
from typing import Any, Dict, Type, cast

from celery import Celery, Task
from celery.signals import setup_logging

from lawnly.core.config import settings

logger = logging.getLogger(__name__)

TASK_MODULES = (
    "lawnly.tasks.scheduled_tasks",
    "lawnly.tasks.outbox_tasks",
)

TASK_ROUTES: Dict[str, Dict[str, str]] = {
    "sweepers.*": {"queue": "payments"},
    "quality.*": {"queue": "maintenance"},
    "outbox.*": {"queue": "notifications"},
}


def _broker_url() -> str:
    return (
        os.getenv("CELERY_BROKER_URL")
        or os.getenv("REDIS_URL")
        or settings.redis_url
        or "redis://localhost:6379/0"
    )


def create_celery_app() -> Celery:
    """Build the Celery app with JSON payloads, UTC clocks and the beat schedule."""
    broker_url = _broker_url()
    app = Celery(
        "lawnly",
        broker=broker_url,
        backend=os.getenv("CELERY_RESULT_BACKEND") or broker_url,
    )

    app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        # Sweeper summaries are only read by operators shortly after a run
        result_expires=6 * 3600,
        worker_prefetch_multiplier=1,
        worker_max_tasks_per_child=500,
        worker_hijack_root_logger=False,
        task_soft_time_limit=240,
        task_time_limit=300,
        broker_transport_options={"visibility_timeout": 3600},
        imports=TASK_MODULES,
        task_routes=TASK_ROUTES,
    )

    from lawnly.tasks.beat_schedule import get_beat_schedule

    app.conf.beat_schedule = get_beat_schedule(settings.environment)
    return app


@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Use the service log format instead of Celery's own handlers."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


celery_app = create_celery_app()


class LoggedTask(Task):  # type: ignore[misc]
    """Task base that logs every terminal outcome with the task id attached."""

    def _context(self, task_id: str) -> Dict[str, Any]:
        return {"task_id": task_id, "task_name": self.name}

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logger.error(
            f"Task {self.name}[{task_id}] failed: {exc}",
            exc_info=True,
            extra=self._context(task_id),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logger.warning(
            f"Task {self.name}[{task_id}] retry {self.request.retries}: {exc}",
            extra={**self._context(task_id), "retry_count": self.request.retries},
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval: Any, task_id: str, args: Any, kwargs: Any) -> None:
        logger.info(f"Task {self.name}[{task_id}] completed", extra=self._context(task_id))
        super().on_success(retval, task_id, args, kwargs)


celery_app.Task = cast(Type[Task], LoggedTask)
