"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

import logging
from typing import Any, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from teachtape.core.config import settings

logger = logging.getLogger(__name__)

_DEFAULT_POOL_KWARGS: dict[str, Any] = {
    "pool_size": 5,
    "max_overflow": 5,
    # Fail fast when the pool is exhausted instead of queueing requests
    "pool_timeout": 2,
    "pool_recycle": 300,
    "pool_pre_ping": True,
    "future": True,
}

_DEFAULT_CONNECT_ARGS: dict[str, Any] = {
    # Cap runaway queries so the API layer recovers quickly
    "options": "-c statement_timeout=15000",
    "connect_timeout": 5,
    "application_name": "teachtape_api",
}


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Engine options for the configured backend."""
    if _is_sqlite(db_url):
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
            "future": True,
        }
    kwargs = dict(_DEFAULT_POOL_KWARGS)
    kwargs["poolclass"] = QueuePool
    kwargs["connect_args"] = dict(_DEFAULT_CONNECT_ARGS)
    return kwargs


db_url = settings.get_database_url()
engine: Engine = create_engine(db_url, **_build_engine_kwargs(db_url))


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db_pool_status() -> dict[str, int]:
    """Get current database pool statistics."""
    pool = engine.pool
    if not isinstance(pool, QueuePool):
        return {"size": 1, "checked_in": 0, "checked_out": 0, "total": 1, "overflow": 0}
    return {
        "size": pool.size(),
        "checked_in": pool.checkedin(),
        "checked_out": pool.checkedout(),
        "total": pool.size() + pool.overflow(),
        "overflow": pool.overflow(),
    }


__all__ = ["Base", "SessionLocal", "engine", "get_db", "get_db_pool_status"]
