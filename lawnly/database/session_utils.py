"""
Dialect helpers for code paths that differ between PostgreSQL and SQLite.
"""

from __future__ import annotations

from sqlalchemy.exc import UnboundExecutionError
from sqlalchemy.orm import Session


def get_dialect_name(session: Session, default: str = "postgresql") -> str:
    """Return the dialect name of the engine bound to ``session``."""
    try:
        bind = session.get_bind()
    except UnboundExecutionError:
        return default
    dialect = getattr(bind, "dialect", None)
    return getattr(dialect, "name", None) or default


def supports_row_locks(session: Session) -> bool:
    """SELECT ... FOR UPDATE is meaningful only on PostgreSQL."""
    return get_dialect_name(session) == "postgresql"
