"""
Usage Tracker
=============

Token and OCR counters for the demo limits.

Two scopes per counter:
- session: resets whenever the active session id changes
- daily: resets once the clock passes the stored reset time (next local midnight)

The tracker only records and reports; the caller decides whether to reject a
request (see check_tokens / check_ocr).
"""

import json
import logging
from datetime import datetime, time, timedelta
from typing import Optional, Type, TypeVar

from pydantic import ValidationError

from ..config import DEFAULT_DEMO_LIMITS, DemoLimits
from ..errors import StorageError
from ..schemas import (
    CamelModel,
    LimitCheck,
    OCRStats,
    OCRUsage,
    TokenStats,
    TokenUsage,
    UsageStats,
    utc_now,
)
from .backend import StorageBackend
from .repository import Clock

logger = logging.getLogger(__name__)

TOKEN_USAGE_KEY = "wtp_token_usage_v1"
OCR_USAGE_KEY = "wtp_ocr_usage_v1"

U = TypeVar("U", bound=CamelModel)


def next_local_midnight(now: datetime) -> datetime:
    """Start of the next calendar day in the local timezone"""
    local = now.astimezone()
    tomorrow = local.date() + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=local.tzinfo)


def _ratio(used: int, limit: int) -> float:
    if limit <= 0:
        return 1.0 if used > 0 else 0.0
    return used / limit


def percent_used(session_used: int, session_limit: int, daily_used: int, daily_limit: int) -> float:
    """Higher of the session and daily ratios, as a percentage capped at 100"""
    ratio = max(_ratio(session_used, session_limit), _ratio(daily_used, daily_limit))
    return round(min(100.0, ratio * 100), 1)


class UsageTracker:
    """
    Usage:
        tracker = UsageTracker(storage, limits=DEFAULT_DEMO_LIMITS)
        tracker.record_tokens(1200, session_id)
        stats = tracker.get_stats(session_id)
    """

    def __init__(
        self,
        storage: StorageBackend,
        limits: DemoLimits = DEFAULT_DEMO_LIMITS,
        clock: Clock = utc_now,
    ):
        self.storage = storage
        self.limits = limits
        self.clock = clock

    # =========================================================================
    # Persistence
    # =========================================================================

    def _read(self, key: str, model: Type[U]) -> Optional[U]:
        try:
            raw = self.storage.get_item(key)
        except StorageError as e:
            logger.error(f"Failed to read {key}: {e}")
            return None
        if not raw:
            return None
        try:
            return model.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Discarding corrupted usage record {key}: {e}")
            return None

    def _write(self, key: str, record: CamelModel) -> None:
        try:
            self.storage.set_item(key, json.dumps(record.to_record()))
        except StorageError as e:
            logger.warning(f"Failed to save usage record {key}: {e}")

    # =========================================================================
    # Tokens
    # =========================================================================

    def _fresh_tokens(self, session_id: str, now: datetime) -> TokenUsage:
        return TokenUsage(session_id=session_id, daily_reset_at=next_local_midnight(now), last_updated=now)

    def get_token_usage(self, session_id: str) -> TokenUsage:
        """Current token counters with session/daily resets applied"""
        now = self.clock()
        usage = self._read(TOKEN_USAGE_KEY, TokenUsage)
        if usage is None:
            usage = self._fresh_tokens(session_id, now)
            self._write(TOKEN_USAGE_KEY, usage)
            return usage

        changed = False
        if now >= usage.daily_reset_at:
            logger.info("Daily token usage reset")
            usage.daily_tokens = 0
            usage.daily_reset_at = next_local_midnight(now)
            changed = True
        if usage.session_id != session_id:
            usage.session_id = session_id
            usage.session_tokens = 0
            changed = True

        if changed:
            usage.last_updated = now
            self._write(TOKEN_USAGE_KEY, usage)
        return usage

    def record_tokens(self, tokens: int, session_id: str) -> TokenUsage:
        if tokens < 0:
            raise ValueError("tokens must be non-negative")
        usage = self.get_token_usage(session_id)
        usage.session_tokens += tokens
        usage.daily_tokens += tokens
        usage.last_updated = self.clock()
        self._write(TOKEN_USAGE_KEY, usage)
        logger.debug(f"Recorded {tokens} tokens (session={usage.session_tokens}, daily={usage.daily_tokens})")
        return usage

    def check_tokens(self, requested: int, session_id: str) -> LimitCheck:
        """Whether a request of `requested` tokens fits every token ceiling"""
        limits = self.limits.tokens
        usage = self.get_token_usage(session_id)
        remaining = max(0, min(
            limits.per_session - usage.session_tokens,
            limits.per_day_per_user - usage.daily_tokens,
        ))
        if requested > limits.per_request:
            return LimitCheck(allowed=False, reason=f"Request exceeds {limits.per_request:,} tokens", remaining=remaining)
        if usage.session_tokens + requested > limits.per_session:
            return LimitCheck(allowed=False, reason="Session token limit reached", remaining=remaining)
        if usage.daily_tokens + requested > limits.per_day_per_user:
            return LimitCheck(allowed=False, reason="Daily token limit reached", remaining=remaining)
        return LimitCheck(allowed=True, remaining=remaining)

    # =========================================================================
    # OCR
    # =========================================================================

    def get_ocr_usage(self, session_id: str) -> OCRUsage:
        now = self.clock()
        usage = self._read(OCR_USAGE_KEY, OCRUsage)
        if usage is None:
            usage = OCRUsage(session_id=session_id, daily_reset_at=next_local_midnight(now), last_updated=now)
            self._write(OCR_USAGE_KEY, usage)
            return usage

        changed = False
        if now >= usage.daily_reset_at:
            logger.info("Daily OCR usage reset")
            usage.daily_pages = 0
            usage.daily_reset_at = next_local_midnight(now)
            changed = True
        if usage.session_id != session_id:
            usage.session_id = session_id
            usage.session_documents = 0
            usage.session_pages = 0
            changed = True

        if changed:
            usage.last_updated = now
            self._write(OCR_USAGE_KEY, usage)
        return usage

    def record_ocr(self, documents: int, pages: int, session_id: str) -> OCRUsage:
        if documents < 0 or pages < 0:
            raise ValueError("documents and pages must be non-negative")
        usage = self.get_ocr_usage(session_id)
        usage.session_documents += documents
        usage.session_pages += pages
        usage.daily_pages += pages
        usage.last_updated = self.clock()
        self._write(OCR_USAGE_KEY, usage)
        return usage

    def check_ocr(self, file_size: int, pages: int, session_id: str) -> LimitCheck:
        """Whether one more document of this size and page count fits the OCR ceilings"""
        limits = self.limits.ocr
        usage = self.get_ocr_usage(session_id)
        remaining = max(0, limits.max_pages_per_day - usage.daily_pages)
        if file_size > limits.max_file_size:
            return LimitCheck(
                allowed=False,
                reason=f"File exceeds {limits.max_file_size / (1024 * 1024):.0f}MB",
                remaining=remaining,
            )
        if pages > limits.max_pages_per_document:
            return LimitCheck(
                allowed=False,
                reason=f"Document exceeds {limits.max_pages_per_document} pages",
                remaining=remaining,
            )
        if usage.session_documents + 1 > limits.max_documents_per_session:
            return LimitCheck(allowed=False, reason="Session document limit reached", remaining=remaining)
        if usage.daily_pages + pages > limits.max_pages_per_day:
            return LimitCheck(allowed=False, reason="Daily page limit reached", remaining=remaining)
        return LimitCheck(allowed=True, remaining=remaining)

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self, session_id: str) -> UsageStats:
        tokens = self.get_token_usage(session_id)
        ocr = self.get_ocr_usage(session_id)
        token_limits = self.limits.tokens
        ocr_limits = self.limits.ocr

        return UsageStats(
            tokens=TokenStats(
                session_used=tokens.session_tokens,
                session_limit=token_limits.per_session,
                daily_used=tokens.daily_tokens,
                daily_limit=token_limits.per_day_per_user,
                percent_used=percent_used(
                    tokens.session_tokens, token_limits.per_session,
                    tokens.daily_tokens, token_limits.per_day_per_user,
                ),
            ),
            ocr=OCRStats(
                documents_used=ocr.session_documents,
                documents_limit=ocr_limits.max_documents_per_session,
                pages_used=ocr.session_pages,
                daily_pages_used=ocr.daily_pages,
                daily_pages_limit=ocr_limits.max_pages_per_day,
                percent_used=percent_used(
                    ocr.session_documents, ocr_limits.max_documents_per_session,
                    ocr.daily_pages, ocr_limits.max_pages_per_day,
                ),
            ),
        )

    def reset(self) -> None:
        """Forget all usage (tests and the settings screen)"""
        for key in (TOKEN_USAGE_KEY, OCR_USAGE_KEY):
            self.storage.remove_item(key)
