"""
Storage Package - local state persistence
=========================================

Key/value backends with a byte quota, session repositories for both tools,
usage counters and the anonymous identity record.
"""

from .backend import StorageBackend, MemoryStorage, SQLStorage, entry_size
from .repository import SessionRepository, StorageStats, WriteResult, WriteStatus
from .testimony_repository import TestimonyRepository, TESTIMONY_STORAGE_KEY
from .deposition_repository import DepositionRepository, DEPOSITION_STORAGE_KEY
from .usage_tracker import UsageTracker, TOKEN_USAGE_KEY, OCR_USAGE_KEY, next_local_midnight
from .identity import IdentityStore, IDENTITY_KEY

__all__ = [
    "StorageBackend", "MemoryStorage", "SQLStorage", "entry_size",
    "SessionRepository", "StorageStats", "WriteResult", "WriteStatus",
    "TestimonyRepository", "TESTIMONY_STORAGE_KEY",
    "DepositionRepository", "DEPOSITION_STORAGE_KEY",
    "UsageTracker", "TOKEN_USAGE_KEY", "OCR_USAGE_KEY", "next_local_midnight",
    "IdentityStore", "IDENTITY_KEY",
]
