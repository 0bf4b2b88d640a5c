# lawnly/repositories/alternative_suggestion_repository.py
from datetime import datetime
from typing import List

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models.alternative_suggestion import AlternativeSuggestion, SuggestionStatus
from .base_repository import BaseRepository


class AlternativeSuggestionRepository(BaseRepository[AlternativeSuggestion]):
    def __init__(self, db: Session):
        super().__init__(db, AlternativeSuggestion)

    def find_for_booking(self, booking_id: str) -> List[AlternativeSuggestion]:
        return self._run(
            "listing suggestions",
            lambda: self._query()
            .filter(AlternativeSuggestion.booking_id == booking_id)
            .order_by(AlternativeSuggestion.created_at.asc())
            .all(),
        )

    def decline_pending_siblings(
        self, booking_id: str, accepted_id: str, responded_at: datetime
    ) -> int:
        """Decline every other pending suggestion on the booking; returns the count."""
        stmt = (
            update(AlternativeSuggestion)
            .where(
                AlternativeSuggestion.booking_id == booking_id,
                AlternativeSuggestion.id != accepted_id,
                AlternativeSuggestion.status == SuggestionStatus.PENDING.value,
            )
            .values(status=SuggestionStatus.DECLINED.value, responded_at=responded_at)
            .execution_options(synchronize_session="fetch")
        )
        result = self._run("declining sibling suggestions", lambda: self.db.execute(stmt))
        return int(result.rowcount or 0)
