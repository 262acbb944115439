"""
Shared error types.

Placed in a separate module so storage, ingest and service modules can raise
and catch the same classes without importing each other.
"""

from typing import Any, Dict, Optional


class PrepError(Exception):
    """Base class for witness_prep errors"""


class MissingInputError(PrepError):
    """
    Required input is missing.

    The only error surfaced to the end user; raised before any network call.
    """

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class StorageError(PrepError):
    """Persistent store could not be read or written"""


class StorageQuotaExceededError(StorageError):
    """Write would exceed the store's byte quota"""

    def __init__(self, key: str, required: int, quota: int):
        super().__init__(
            f"Storage quota exceeded writing '{key}': {required} bytes > {quota} bytes"
        )
        self.key = key
        self.required = required
        self.quota = quota


class ExtractionError(PrepError):
    """Text could not be extracted from an uploaded document"""


class UnsupportedFormatError(ExtractionError):
    """File format not supported"""


def require_text(value: Optional[str], field: str, message: str) -> str:
    """Stripped value, or MissingInputError when it is empty"""
    if value is None or not str(value).strip():
        raise MissingInputError(message, field=field)
    return str(value).strip()
