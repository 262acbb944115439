"""
Database Package - SQLAlchemy local state store
===============================================
"""

from .models import Base, LocalStateEntry
from .session import get_db_session, init_db, get_engine, reset_engine, create_engine_for_url

__all__ = [
    "Base",
    "LocalStateEntry",
    "get_db_session", "init_db", "get_engine", "reset_engine", "create_engine_for_url",
]
