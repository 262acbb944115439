"""
Anonymous identity record: a persistent user id plus the active tab session id.
"""

import json
import logging
import uuid
from typing import Optional

from ..errors import StorageError
from .backend import StorageBackend

logger = logging.getLogger(__name__)

IDENTITY_KEY = "wtp_identity_v1"


def _new_user_id() -> str:
    return f"user_{uuid.uuid4()}"


def _new_session_id() -> str:
    return f"session_{uuid.uuid4()}"


class IdentityStore:
    def __init__(self, storage: StorageBackend):
        self.storage = storage

    def _read(self) -> dict:
        try:
            raw = self.storage.get_item(IDENTITY_KEY)
            record = json.loads(raw) if raw else {}
        except (StorageError, ValueError) as e:
            logger.warning(f"Identity record unreadable, starting fresh: {e}")
            return {}
        return record if isinstance(record, dict) else {}

    def _write(self, record: dict) -> None:
        try:
            self.storage.set_item(IDENTITY_KEY, json.dumps(record))
        except StorageError as e:
            logger.warning(f"Failed to save identity record: {e}")

    def get_user_id(self) -> str:
        """Persistent anonymous user id, created on first use"""
        record = self._read()
        user_id = record.get("userId")
        if not user_id:
            user_id = _new_user_id()
            record["userId"] = user_id
            self._write(record)
        return user_id

    def current_session_id(self) -> Optional[str]:
        return self._read().get("sessionId")

    def new_tab_session_id(self) -> str:
        """Start a new tab session; session-scoped usage counters reset when it changes"""
        record = self._read()
        session_id = _new_session_id()
        record["sessionId"] = session_id
        self._write(record)
        return session_id
