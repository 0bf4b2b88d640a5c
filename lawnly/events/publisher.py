"""Side effect publisher - writes effects to the outbox inside the caller's transaction."""
from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Any, Dict, Iterable, List

from ..repositories.event_outbox_repository import EventOutboxRepository
from .side_effects import SideEffect, aggregate_id_for, content_key

logger = logging.getLogger(__name__)


def _json_safe(payload: Dict[str, Any]) -> Dict[str, Any]:
    safe: Dict[str, Any] = {}
    for key, value in payload.items():
        if isinstance(value, (datetime, date)):
            safe[key] = value.isoformat()
        elif isinstance(value, Decimal):
            safe[key] = float(value)
        elif isinstance(value, dict):
            safe[key] = _json_safe(value)
        else:
            safe[key] = value
    return safe


class SideEffectPublisher:
    """
    Persists side effects as outbox rows.

    The caller owns the transaction; rows become visible to the delivery
    task only once the business change commits.
    """

    def __init__(self, outbox_repository: EventOutboxRepository):
        self.outbox_repo = outbox_repository

    def publish(self, effect: SideEffect, scope: str) -> None:
        event_type = type(effect).__name__
        self.outbox_repo.enqueue(
            event_type=event_type,
            aggregate_id=aggregate_id_for(effect),
            payload=_json_safe(effect.to_dict()),
            idempotency_key=content_key(effect, scope),
        )
        logger.debug("Queued %s for %s", event_type, scope)

    def publish_all(self, effects: Iterable[SideEffect], scope: str) -> List[SideEffect]:
        published = list(effects)
        for effect in published:
            self.publish(effect, scope)
        return published
