"""
Session Repository Base
=======================

Each tool keeps its sessions as one JSON blob (session id -> full record)
under a fixed storage key. Every mutator loads the whole collection, applies
one change and writes the whole collection back, so the last completed write
wins.

Write outcomes are reported explicitly through `last_write`:
- PERSISTED: stored (possibly after evicting old sessions to free space)
- MEMORY_ONLY: quota still exceeded after cleanup; the change is kept in
  memory for the life of this repository and retried on the next save
- FAILED: the backend errored; nothing was kept
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import ValidationError

from ..config import get_settings
from ..errors import StorageError, StorageQuotaExceededError
from ..schemas import CamelModel, is_status_regression, merge_fields, utc_now
from .backend import StorageBackend

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=CamelModel)
Clock = Callable[[], datetime]


class WriteStatus(str, Enum):
    PERSISTED = "persisted"
    MEMORY_ONLY = "memory_only"
    FAILED = "failed"


@dataclass
class WriteResult:
    """Outcome of persisting a collection"""
    status: WriteStatus
    evicted: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def persisted(self) -> bool:
        return self.status == WriteStatus.PERSISTED


@dataclass
class StorageStats:
    key: str
    used_bytes: int
    total_used_bytes: int
    quota_bytes: int
    session_count: int

    @property
    def percent_used(self) -> float:
        if self.quota_bytes <= 0:
            return 100.0
        return round(min(100.0, self.total_used_bytes / self.quota_bytes * 100), 1)


class SessionRepository(Generic[S]):
    """
    Whole-collection CRUD over one storage key.

    Subclasses set `storage_key`, `model` and `ready_status`, and add the
    tool-specific constructors and nested mutators.
    """

    storage_key: str = ""
    model: Type[S]
    ready_status = None

    def __init__(
        self,
        storage: StorageBackend,
        ttl_hours: Optional[float] = None,
        clock: Clock = utc_now,
    ):
        self.storage = storage
        self.ttl = timedelta(hours=ttl_hours if ttl_hours is not None else get_settings().session_ttl_hours)
        self.clock = clock
        self.last_write: Optional[WriteResult] = None
        self._pending: Optional[Dict[str, dict]] = None

    # =========================================================================
    # Load / save
    # =========================================================================

    def _read_records(self) -> Dict[str, dict]:
        if self._pending is not None:
            return json.loads(json.dumps(self._pending))

        try:
            raw = self.storage.get_item(self.storage_key)
        except StorageError as e:
            logger.error(f"Failed to read {self.storage_key}: {e}")
            return {}

        if not raw:
            return {}

        try:
            records = json.loads(raw)
        except ValueError as e:
            logger.error(f"Corrupted state under {self.storage_key}, treating as empty: {e}")
            return {}

        if not isinstance(records, dict):
            logger.error(f"Unexpected state under {self.storage_key} ({type(records).__name__}), treating as empty")
            return {}
        return records

    def _load(self) -> Dict[str, S]:
        sessions: Dict[str, S] = {}
        for session_id, record in self._read_records().items():
            try:
                session = self.model.model_validate(record)
            except ValidationError as e:
                logger.warning(f"Skipping invalid session {session_id} in {self.storage_key}: {e.error_count()} errors")
                continue
            sessions[session.id] = session
        return sessions

    def _serialize(self, sessions: Dict[str, S]) -> Dict[str, dict]:
        return {session_id: session.to_record() for session_id, session in sessions.items()}

    def _save(self, sessions: Dict[str, S]) -> WriteResult:
        records = self._serialize(sessions)
        try:
            self.storage.set_item(self.storage_key, json.dumps(records))
            result = WriteResult(WriteStatus.PERSISTED)
        except StorageQuotaExceededError as e:
            logger.warning(f"{e}; running aggressive cleanup")
            evicted = self._cleanup(sessions, aggressive=True)
            records = self._serialize(sessions)
            try:
                self.storage.set_item(self.storage_key, json.dumps(records))
                result = WriteResult(WriteStatus.PERSISTED, evicted=evicted)
            except StorageError as retry_error:
                logger.warning(
                    f"Still unable to persist {self.storage_key} after cleanup; keeping changes in memory only: {retry_error}"
                )
                self._pending = records
                self.last_write = WriteResult(WriteStatus.MEMORY_ONLY, evicted=evicted, error=str(retry_error))
                return self.last_write
        except StorageError as e:
            logger.error(f"Failed to persist {self.storage_key}: {e}")
            self.last_write = WriteResult(WriteStatus.FAILED, error=str(e))
            return self.last_write

        self._pending = None
        self.last_write = result
        return result

    def _cleanup(self, sessions: Dict[str, S], aggressive: bool = False) -> List[str]:
        """Drop sessions older than the retention window (halved when aggressive)"""
        ttl = self.ttl / 2 if aggressive else self.ttl
        cutoff = self.clock() - ttl
        expired = [sid for sid, session in sessions.items() if session.created_at < cutoff]
        for sid in expired:
            del sessions[sid]
        if expired:
            logger.info(f"Removed {len(expired)} expired sessions from {self.storage_key}")
        return expired

    def _insert(self, session: S) -> S:
        sessions = self._load()
        self._cleanup(sessions)
        if session.id in sessions:
            raise ValueError(f"Session id {session.id} already exists")
        sessions[session.id] = session
        self._save(sessions)
        return session

    def _mutate(self, session_id: str, change: Callable[[S], Optional[S]]) -> Optional[S]:
        """
        Apply one change to one session and persist the collection.

        `change` returns the updated session, or None when its target (a
        nested document, section...) does not exist; nothing is written then.
        """
        sessions = self._load()
        session = sessions.get(session_id)
        if session is None:
            logger.debug(f"Session {session_id} not found in {self.storage_key}")
            return None

        updated = change(session)
        if updated is None:
            return None

        sessions[session_id] = updated
        self._save(sessions)
        return updated

    # =========================================================================
    # Common operations
    # =========================================================================

    def get(self, session_id: str) -> Optional[S]:
        return self._load().get(session_id)

    def list(self) -> List[S]:
        """All sessions, newest created first"""
        return sorted(self._load().values(), key=lambda s: s.created_at, reverse=True)

    def update(self, session_id: str, updates: Dict) -> Optional[S]:
        """Shallow-merge top-level fields into a session"""
        if "id" in updates and updates["id"] != session_id:
            raise ValueError("Session id cannot be changed")

        def change(session: S) -> S:
            merged = merge_fields(session, {k: v for k, v in updates.items() if k != "id"})
            if is_status_regression(session.status, merged.status):
                logger.warning(f"Session {session_id} status moved back from {session.status.value} to {merged.status.value}")
            return merged

        return self._mutate(session_id, change)

    def delete(self, session_id: str) -> bool:
        """Remove a session and everything nested in it"""
        sessions = self._load()
        if session_id not in sessions:
            return False
        del sessions[session_id]
        self._save(sessions)
        return True

    def clear_all(self) -> None:
        self._pending = None
        try:
            self.storage.remove_item(self.storage_key)
        except StorageError as e:
            logger.error(f"Failed to clear {self.storage_key}: {e}")
            raise

    def storage_stats(self) -> StorageStats:
        used = self.storage.size_of(self.storage_key)
        return StorageStats(
            key=self.storage_key,
            used_bytes=used,
            total_used_bytes=self.storage.used_bytes(),
            quota_bytes=self.storage.quota_bytes,
            session_count=len(self._load()),
        )

    # =========================================================================
    # Documents and questions (shared by both tools)
    # =========================================================================

    def add_document(self, session_id: str, document) -> Optional[S]:
        def change(session: S) -> S:
            if any(d.id == document.id for d in session.documents):
                raise ValueError(f"Document id {document.id} already exists in session {session_id}")
            session.documents.append(document)
            return session

        return self._mutate(session_id, change)

    def update_document(self, session_id: str, document_id: str, updates: Dict) -> Optional[S]:
        def change(session: S) -> Optional[S]:
            for index, document in enumerate(session.documents):
                if document.id == document_id:
                    session.documents[index] = merge_fields(
                        document, {k: v for k, v in updates.items() if k != "id"}
                    )
                    return session
            return None

        return self._mutate(session_id, change)

    def remove_document(self, session_id: str, document_id: str) -> Optional[S]:
        def change(session: S) -> Optional[S]:
            remaining = [d for d in session.documents if d.id != document_id]
            if len(remaining) == len(session.documents):
                return None
            session.documents = remaining
            return session

        return self._mutate(session_id, change)

    def set_questions(self, session_id: str, questions) -> Optional[S]:
        """Replace the question list and mark the session ready"""
        questions = list(questions)
        ids = [q.id for q in questions]
        if len(ids) != len(set(ids)):
            raise ValueError("Question ids must be unique")

        def change(session: S) -> S:
            session.questions = questions
            session.status = self.ready_status
            return session

        return self._mutate(session_id, change)

