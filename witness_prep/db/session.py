"""
Database Session Management
===========================

Engine and session handling for the local state store.
The default engine follows STORAGE_URL; explicit URLs get their own engine.
"""

import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..config import get_settings
from .models import Base

_engine = None
_engine_url = None

# Session factory is configured lazily (important for tests that change STORAGE_URL at runtime).
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def _current_storage_url() -> str:
    return get_settings().storage_url


def create_engine_for_url(storage_url: str) -> Engine:
    echo = os.environ.get("SQL_ECHO", "false").lower() == "true"

    # In-memory SQLite must share one connection across sessions
    if storage_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            storage_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )

    if storage_url.startswith("sqlite"):
        return create_engine(
            storage_url,
            connect_args={"check_same_thread": False},
            echo=echo,
        )

    return create_engine(storage_url, pool_pre_ping=True, echo=echo)


def get_engine() -> Engine:
    """Get the SQLAlchemy engine for the configured STORAGE_URL"""
    global _engine, _engine_url
    storage_url = _current_storage_url()
    if _engine is None or _engine_url != storage_url:
        _engine = create_engine_for_url(storage_url)
        _engine_url = storage_url
        SessionLocal.configure(bind=_engine)
    return _engine


def reset_engine():
    """Reset engine/sessionmaker (primarily for tests)."""
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    SessionLocal.configure(bind=None)


def init_db(engine: Optional[Engine] = None):
    """Create the local_state table if missing"""
    Base.metadata.create_all(bind=engine or get_engine())


@contextmanager
def get_db_session(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for database session.

    Usage:
        with get_db_session() as db:
            db.get(LocalStateEntry, key)
    """
    if factory is None:
        # Ensure SessionLocal is configured for current STORAGE_URL
        get_engine()
        factory = SessionLocal
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
