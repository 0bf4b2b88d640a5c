# lawnly/repositories/notification_repository.py
from typing import List

from sqlalchemy.orm import Session

from ..models.notification import Notification
from .base_repository import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    def __init__(self, db: Session):
        super().__init__(db, Notification)

    def list_for_user(self, user_id: str, limit: int = 50) -> List[Notification]:
        return self._run(
            "listing notifications",
            lambda: self._query()
            .filter(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
            .all(),
        )
