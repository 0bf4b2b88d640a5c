# lawnly/repositories/user_repository.py
from typing import List

from sqlalchemy.orm import Session

from ..core.enums import RoleName
from ..models.user import User
from .base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def find_admins(self) -> List[User]:
        return self.find_by(role=RoleName.ADMIN.value)
