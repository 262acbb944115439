"""
Shared fixtures: in-memory storage, a controllable clock and LLM clients
backed by httpx.MockTransport.
"""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from witness_prep.config import Settings
from witness_prep.llm_client import LLMClient
from witness_prep.storage import MemoryStorage


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def completion(content: str, total_tokens: int = 1500) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"total_tokens": total_tokens},
    }


def make_settings(**overrides) -> Settings:
    values = {"llm_api_key": "test-key", "storage_quota_bytes": 5 * 1024 * 1024}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_client(handler, **settings_overrides) -> LLMClient:
    return LLMClient(settings=make_settings(**settings_overrides), transport=httpx.MockTransport(handler))


def replying(content: str, total_tokens: int = 1500, calls: list = None):
    """Handler returning one fixed completion; requests are appended to `calls`"""
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(json.loads(request.content))
        return httpx.Response(200, json=completion(content, total_tokens))
    return handler


def failing(status_code: int = 500):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text="upstream error")
    return handler


def timing_out(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage(quota_bytes=5 * 1024 * 1024)


@pytest.fixture
def settings():
    return make_settings()
