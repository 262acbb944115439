"""
Key/Value Storage Backends
==========================

The persistent store is a flat string-keyed map with a byte quota shared by
all keys, mirroring what a browser's local storage offers. Every write is
checked against the quota; an oversize write raises StorageQuotaExceededError
and leaves the previous value untouched.

Backends:
- MemoryStorage: process-local dict, used by tests and throwaway sessions
- SQLStorage: SQLAlchemy table (local_state), SQLite by default
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..config import get_settings
from ..db.models import LocalStateEntry
from ..db.session import create_engine_for_url, get_db_session, init_db
from ..errors import StorageError, StorageQuotaExceededError

logger = logging.getLogger(__name__)


def entry_size(key: str, value: Optional[str]) -> int:
    """Bytes one entry counts against the quota"""
    if value is None:
        return 0
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class StorageBackend(ABC):
    """String key/value store with a byte quota across all keys"""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes if quota_bytes is not None else get_settings().storage_quota_bytes

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        ...

    @abstractmethod
    def items(self) -> Dict[str, str]:
        ...

    @abstractmethod
    def _write(self, key: str, value: str) -> None:
        ...

    def keys(self) -> List[str]:
        return list(self.items())

    def used_bytes(self) -> int:
        return sum(entry_size(k, v) for k, v in self.items().items())

    def size_of(self, key: str) -> int:
        return entry_size(key, self.get_item(key))

    def set_item(self, key: str, value: str) -> None:
        """Store value under key, raising StorageQuotaExceededError if it does not fit"""
        current = self.items()
        others = sum(entry_size(k, v) for k, v in current.items() if k != key)
        required = others + entry_size(key, value)
        if required > self.quota_bytes:
            raise StorageQuotaExceededError(key, required, self.quota_bytes)
        self._write(key, value)


class MemoryStorage(StorageBackend):
    """In-process storage backend"""

    def __init__(self, quota_bytes: Optional[int] = None):
        super().__init__(quota_bytes)
        self._data: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def items(self) -> Dict[str, str]:
        return dict(self._data)

    def _write(self, key: str, value: str) -> None:
        self._data[key] = value


class SQLStorage(StorageBackend):
    """
    SQLAlchemy-backed storage on the local_state table.

    With no URL the shared engine for STORAGE_URL is used; an explicit URL
    gets a dedicated engine.
    """

    def __init__(self, storage_url: Optional[str] = None, quota_bytes: Optional[int] = None):
        super().__init__(quota_bytes)
        self._factory: Optional[sessionmaker] = None
        try:
            if storage_url:
                engine = create_engine_for_url(storage_url)
                self._factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
                init_db(engine)
            else:
                init_db()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not initialize storage: {e}") from e

    def get_item(self, key: str) -> Optional[str]:
        try:
            with get_db_session(self._factory) as db:
                entry = db.get(LocalStateEntry, key)
                return entry.value if entry else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read '{key}': {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            with get_db_session(self._factory) as db:
                entry = db.get(LocalStateEntry, key)
                if entry:
                    db.delete(entry)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to remove '{key}': {e}") from e

    def items(self) -> Dict[str, str]:
        try:
            with get_db_session(self._factory) as db:
                rows = db.execute(select(LocalStateEntry.key, LocalStateEntry.value)).all()
                return {row.key: row.value for row in rows}
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list storage: {e}") from e

    def _write(self, key: str, value: str) -> None:
        try:
            with get_db_session(self._factory) as db:
                entry = db.get(LocalStateEntry, key)
                if entry:
                    entry.value = value
                    entry.updated_at = datetime.now(timezone.utc)
                else:
                    db.add(LocalStateEntry(key=key, value=value))
            logger.debug(f"Stored {key} ({entry_size(key, value)} bytes)")
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write '{key}': {e}") from e
