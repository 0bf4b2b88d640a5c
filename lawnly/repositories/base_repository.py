# lawnly/repositories/base_repository.py
"""
Shared data access for Lawnly repositories.

Repositories own queries; services own transactions. Nothing here
commits. Driver errors surface as ``RepositoryException`` and unique or
foreign key violations on insert as ``DuplicateRecordException``.
"""

import logging
from typing import Any, Callable, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import DuplicateRecordException, RepositoryException
from ..database.session_utils import supports_row_locks

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """Query helpers bound to one model class and one session."""

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def _query(self) -> Query:
        return self.db.query(self.model)

    def _run(self, description: str, fn: Callable[[], R]) -> R:
        """Run a query callable, translating driver errors."""
        try:
            return fn()
        except SQLAlchemyError as e:
            self.logger.error(f"Error {description} ({self.model.__name__}): {e}")
            raise RepositoryException(f"Failed {description}: {e}")

    def get_by_id(self, id: str, for_update: bool = False) -> Optional[T]:
        """``for_update`` takes a row lock on PostgreSQL and is ignored elsewhere."""

        def load() -> Optional[T]:
            query = self._query().filter(self.model.id == id)
            if for_update and supports_row_locks(self.db):
                query = query.with_for_update()
            return query.first()

        return self._run(f"loading {id}", load)

    def create(self, **fields: Any) -> T:
        entity = self.model(**fields)
        self.db.add(entity)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.logger.warning("Constraint rejected new %s: %s", self.model.__name__, exc.orig)
            raise DuplicateRecordException(
                f"Integrity constraint violated for {self.model.__name__}"
            ) from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error inserting {self.model.__name__}: {e}")
            raise RepositoryException(f"Failed to create {self.model.__name__}: {e}")
        return entity

    def update(self, id: str, **fields: Any) -> Optional[T]:
        """Assign known attributes and flush. Unknown keys are ignored."""
        entity = self.get_by_id(id)
        if entity is None:
            return None
        for key, value in fields.items():
            if hasattr(entity, key):
                setattr(entity, key, value)
        self._run(f"updating {id}", self.db.flush)
        return entity

    def count(self, **criteria: Any) -> int:
        return self._run("counting", lambda: self._query().filter_by(**criteria).count())

    def find_by(self, **criteria: Any) -> List[T]:
        return self._run("finding", lambda: self._query().filter_by(**criteria).all())

    def find_one_by(self, **criteria: Any) -> Optional[T]:
        return self._run("finding one", lambda: self._query().filter_by(**criteria).first())

    def flush(self) -> None:
        self._run("flushing", self.db.flush)
