from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace

import pytest

from supportchat.app.chat.contracts import Turn
from supportchat.app.llm.providers import CompletionProvider
from supportchat.app.storage.memory_store import InMemoryRecordStore
from supportchat.core.config import AppConfig, RateLimitSettings


def _base_config() -> AppConfig:
    return AppConfig(
        app_name="Support Chat Test",
        app_version="0.0.0",
        environment="test",
        log_level="INFO",
        database_url=None,
        database_echo=False,
        completion_backend="openai",
        openai_api_key=None,
        openai_model="gpt-3.5-turbo",
        gemini_api_key=None,
        gemini_model="gemini-2.5-flash",
        max_message_length=5000,
        history_limit=10,
        max_output_tokens=500,
        temperature=0.7,
        request_timeout_seconds=30.0,
        max_body_bytes=100 * 1024,
        frontend_url="http://localhost:3000",
        api_rate_limit=RateLimitSettings(window_seconds=900, max_requests=100),
        daily_rate_limit=RateLimitSettings(window_seconds=86400, max_requests=200),
        origin_rate_limit=RateLimitSettings(window_seconds=900, max_requests=50),
        session_rate_limit=RateLimitSettings(window_seconds=900, max_requests=20),
        api_limit_skip_successful=False,
        api_limit_skip_failed=False,
    )


class RecordingProvider(CompletionProvider):
    name = "recording"

    def __init__(self, reply: str = "Happy to help!") -> None:
        self.reply = reply
        self.calls: list[dict[str, object]] = []

    async def complete(
        self,
        turns: Sequence[Turn],
        *,
        max_output_tokens: int,
        temperature: float,
    ) -> str:
        self.calls.append(
            {
                "turns": list(turns),
                "max_output_tokens": max_output_tokens,
                "temperature": temperature,
            }
        )
        return self.reply


@pytest.fixture
def make_config() -> Callable[..., AppConfig]:
    def _make(**overrides: object) -> AppConfig:
        return replace(_base_config(), **overrides)

    return _make


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def provider() -> RecordingProvider:
    return RecordingProvider()
