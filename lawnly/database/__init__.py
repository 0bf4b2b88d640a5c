"""
Engine, session factory and declarative base for the Lawnly booking core.

PostgreSQL in deployment; SQLite (in memory) for the test suite.
"""

from __future__ import annotations

import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from lawnly.core.config import settings

logger = logging.getLogger(__name__)

# One connection per in-flight request thread
POSTGRES_POOL_OPTIONS: dict[str, Any] = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 5,
    "pool_recycle": 300,
    "pool_pre_ping": True,
}


def engine_options(db_url: str) -> dict[str, Any]:
    if db_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return dict(POSTGRES_POOL_OPTIONS)


engine: Engine = create_engine(settings.database_url, **engine_options(settings.database_url))


@event.listens_for(engine, "connect")
def on_connect(dbapi_connection: Any, connection_record: Any) -> None:
    logger.debug("Opened %s connection", engine.dialect.name)


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; committed when the handler returns cleanly."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _pool_counter(pool: Any, name: str) -> int:
    # SingletonThreadPool (in-memory SQLite) lacks most counters
    reader = getattr(pool, name, None)
    return int(reader()) if callable(reader) else 0


def get_db_pool_status() -> dict[str, int]:
    """Connection pool counters for the health endpoint."""
    pool = engine.pool
    size, overflow = _pool_counter(pool, "size"), _pool_counter(pool, "overflow")
    return {
        "size": size,
        "checked_in": _pool_counter(pool, "checkedin"),
        "checked_out": _pool_counter(pool, "checkedout"),
        "total": size + overflow,
        "overflow": overflow,
    }
