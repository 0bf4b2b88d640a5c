# lawnly/services/base.py
"""
Shared plumbing for Lawnly services.

A service method runs inside ``transaction()``: the booking change and the
outbox rows for its side effects commit together or not at all. Timing of
public operations goes to Prometheus through ``measure_operation``.
"""

from contextlib import contextmanager
from datetime import datetime
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterable, Iterator, List, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ServiceException
from ..core.timezone_utils import utcnow
from ..events.publisher import SideEffectPublisher
from ..events.side_effects import SideEffect
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)
        self.publisher = SideEffectPublisher(RepositoryFactory.create_event_outbox_repository(db))

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Commit on clean exit, roll back on any error.

        Driver failures are rewrapped as ``ServiceException``; domain errors
        propagate unchanged so routes can render them.
        """
        try:
            yield self.db
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.error(f"Rolled back after database error: {e}")
            raise ServiceException(f"Database operation failed: {e}")
        except Exception as e:
            self.db.rollback()
            self.logger.debug(f"Rolled back after {type(e).__name__}")
            raise
        else:
            try:
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                self.logger.error(f"Commit failed: {e}")
                raise ServiceException(f"Database operation failed: {e}")

    def publish(self, effects: Iterable[SideEffect], scope: str) -> List[SideEffect]:
        """Queue side effects in the current transaction."""
        return self.publisher.publish_all(effects, scope)

    @staticmethod
    def now(value: Optional[datetime] = None) -> datetime:
        """Injected clock value or the current UTC time."""
        return value if value is not None else utcnow()

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Time a service method and report it as ``operation_name``.

            @BaseService.measure_operation("release_payout")
            def release_payout(self, booking_id): ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                started = time.perf_counter()
                error_type: Optional[str] = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.perf_counter() - started
                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(f"{operation_name} took {elapsed:.2f}s")
                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="error" if error_type else "success",
                        error_type=error_type,
                    )

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})
