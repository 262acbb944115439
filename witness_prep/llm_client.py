"""
LLM Gateway
===========

Async chat-completions client for the external LLM service, plus the robust
JSON parser applied to every completion.

The gateway never raises: failures come back as an LLMCallResult with
success=False (and timed_out=True when the client-side timeout fired).
There is no network retry; callers substitute fallback content instead.
"""

import json
import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from .config import Settings, get_settings

logger = logging.getLogger(__name__)


ARRAY = "array"
OBJECT = "object"

_FENCE_OPEN = re.compile(r"^```[a-zA-Z0-9_-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")
_ARRAY_LITERAL = re.compile(r"\[\s*\{[\s\S]*\}\s*\]")
_OBJECT_LITERAL = re.compile(r"\{[\s\S]*\}")

_DELIMITERS = {ARRAY: ("[", "]"), OBJECT: ("{", "}")}


# =============================================================================
# Robust JSON Parser
# =============================================================================

def _shape_ok(value: Any, expect: str) -> bool:
    if expect == ARRAY:
        return isinstance(value, list)
    return isinstance(value, dict)


def _direct(content: str, expect: str) -> Optional[str]:
    return content


def _cleaned(content: str, expect: str) -> Optional[str]:
    cleaned = content.strip().lstrip("\ufeff").strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


def _regex_literal(content: str, expect: str) -> Optional[str]:
    pattern = _ARRAY_LITERAL if expect == ARRAY else _OBJECT_LITERAL
    match = pattern.search(content)
    return match.group(0) if match else None


def _delimiter_slice(content: str, expect: str) -> Optional[str]:
    opening, closing = _DELIMITERS[expect]
    first = content.find(opening)
    last = content.rfind(closing)
    if first == -1 or last <= first:
        return None
    return content[first:last + 1]


# Strategies share one signature; _direct and _cleaned ignore `expect`
PARSE_STRATEGIES: List[Callable[[str, str], Optional[str]]] = [
    _direct,
    _cleaned,
    _regex_literal,
    _delimiter_slice,
]


def parse_json_response(content: Optional[str], expect: str = ARRAY) -> Optional[Any]:
    """
    Recover a JSON array or object from free-form LLM output.

    Strategies, first success wins:
    1. Direct parse
    2. Strip BOM and markdown code fences, then parse
    3. Regex-extract the first bracketed/braced literal
    4. Slice from the first opening to the last closing delimiter

    A value of the wrong shape (object when an array was expected, or the
    reverse) is never accepted.

    Args:
        content: Raw completion text
        expect: ARRAY or OBJECT

    Returns:
        Parsed list/dict, or None if every strategy failed
    """
    if expect not in _DELIMITERS:
        raise ValueError(f"expect must be '{ARRAY}' or '{OBJECT}', got {expect!r}")

    if not content or not content.strip():
        return None

    for strategy in PARSE_STRATEGIES:
        try:
            candidate = strategy(content, expect)
            if not candidate:
                continue
            value = json.loads(candidate)
        except (ValueError, TypeError, RecursionError) as e:
            logger.debug(f"JSON strategy {strategy.__name__} failed: {e}")
            continue

        if _shape_ok(value, expect):
            logger.debug(f"JSON recovered via {strategy.__name__}")
            return value

    logger.warning(f"Could not recover JSON {expect}: {safe_log_content(content)}")
    return None


def safe_log_content(content: str, max_chars: int = 120) -> str:
    """
    Create a safe log representation of content.

    Args:
        content: Content to log
        max_chars: Maximum characters to show

    Returns:
        Safe log string with length and hash
    """
    if not content:
        return "(empty)"

    content_hash = hashlib.sha256(content.encode()).hexdigest()[:12]
    preview = content[:max_chars].replace('\n', ' ')

    return f"len={len(content)} hash={content_hash} preview='{preview}...'"


# =============================================================================
# Gateway
# =============================================================================

@dataclass
class LLMCallResult:
    """Result from an LLM API call"""
    content: str
    model: str
    total_tokens: int = 0
    raw_response: Optional[Dict] = None
    success: bool = True
    error: Optional[str] = None
    timed_out: bool = False

    @property
    def has_content(self) -> bool:
        return self.success and bool(self.content and self.content.strip())


class LLMClient:
    """
    Chat-completions client for the external LLM service.

    Usage:
        client = LLMClient()
        result = await client.chat(messages, model="casemark/casemark-core-1")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.settings.llm_timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self):
        """Close HTTP client"""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> LLMCallResult:
        """
        Send one chat-completion request.

        Args:
            messages: Ordered list of {role, content} dicts
            model: Model identifier
            temperature: Sampling temperature
            max_tokens: Maximum output tokens

        Returns:
            LLMCallResult with content or error
        """
        if not self.settings.llm_api_key:
            logger.warning("LLM API key not set")
            return LLMCallResult(
                content="",
                model=model,
                success=False,
                error="API key not configured"
            )

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        headers = {
            "Authorization": f"Bearer {self.settings.llm_api_key}",
            "Content-Type": "application/json",
        }

        try:
            client = await self._get_client()
            response = await client.post(
                f"{self.settings.llm_base_url.rstrip('/')}/chat/completions",
                json=payload,
                headers=headers
            )
            response.raise_for_status()
            data = response.json()

            try:
                content = data["choices"][0]["message"]["content"]
            except (KeyError, IndexError, TypeError) as e:
                logger.error(f"LLM response missing content: {e}")
                return LLMCallResult(
                    content="",
                    model=model,
                    success=False,
                    error=f"Response missing content: {e}",
                    raw_response=data
                )

            if content is None:
                logger.warning("LLM returned null content")
                content = ""

            usage = data.get("usage") or {}

            return LLMCallResult(
                content=content,
                model=model,
                total_tokens=int(usage.get("total_tokens") or 0),
                raw_response=data,
                success=True
            )

        except httpx.TimeoutException as e:
            logger.error(f"LLM request timed out after {self.settings.llm_timeout}s: {e}")
            return LLMCallResult(
                content="",
                model=model,
                success=False,
                error="timed out",
                timed_out=True
            )
        except httpx.HTTPStatusError as e:
            logger.error(f"LLM API error: {e.response.status_code}")
            return LLMCallResult(
                content="",
                model=model,
                success=False,
                error=f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            )
        except Exception as e:
            logger.error(f"LLM request failed: {e}")
            return LLMCallResult(
                content="",
                model=model,
                success=False,
                error=str(e)
            )


# Singleton
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get singleton LLM client"""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
