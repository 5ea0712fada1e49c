from __future__ import annotations

import pytest

from supportchat.app.admission.contracts import RateLimitRule
from supportchat.app.admission.service import (
    FixedWindowRateLimiter,
    RateLimitExceeded,
    build_api_limiter,
    build_chat_admission,
    enforce,
    should_refund,
)
from supportchat.core.config import RateLimitSettings


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _limiter(max_requests: int = 3, window_seconds: float = 60) -> tuple[FixedWindowRateLimiter, _Clock]:
    clock = _Clock()
    rule = RateLimitRule(
        name="test",
        window_seconds=window_seconds,
        max_requests=max_requests,
        message="slow down",
    )
    return FixedWindowRateLimiter(rule, clock=clock), clock


def test_request_past_cap_is_rejected_until_window_elapses() -> None:
    limiter, clock = _limiter(max_requests=3)

    decisions = [limiter.hit("1.2.3.4") for _ in range(3)]
    assert all(decision.allowed for decision in decisions)
    assert [decision.remaining for decision in decisions] == [2, 1, 0]

    rejected = limiter.hit("1.2.3.4")
    assert rejected.allowed is False
    assert rejected.headers()["Retry-After"] == "60"

    clock.now += 59
    assert limiter.hit("1.2.3.4").allowed is False

    clock.now += 1
    assert limiter.hit("1.2.3.4").allowed is True


def test_keys_are_counted_independently() -> None:
    limiter, _clock = _limiter(max_requests=1)

    assert limiter.hit("a").allowed is True
    assert limiter.hit("b").allowed is True
    assert limiter.hit("a").allowed is False


def test_rejected_hits_are_not_charged() -> None:
    limiter, _clock = _limiter(max_requests=1, window_seconds=10)
    admitted = limiter.hit("a")
    for _ in range(5):
        assert limiter.hit("a").allowed is False

    limiter.refund(admitted)

    assert limiter.hit("a").allowed is True


def test_refund_returns_a_slot() -> None:
    limiter, _clock = _limiter(max_requests=1)
    admitted = limiter.hit("a")

    limiter.refund(admitted)

    assert limiter.hit("a").allowed is True


def test_refund_after_window_rollover_leaves_new_window_alone() -> None:
    limiter, clock = _limiter(max_requests=2, window_seconds=10)
    stale = limiter.hit("a")
    clock.now += 10
    limiter.hit("a")
    limiter.hit("a")

    limiter.refund(stale)

    assert limiter.hit("a").allowed is False


def test_enforce_raises_with_rule_message() -> None:
    limiter, _clock = _limiter(max_requests=1)
    enforce(limiter, "a")

    with pytest.raises(RateLimitExceeded, match="slow down") as exc_info:
        enforce(limiter, "a")

    assert exc_info.value.decision.allowed is False


def test_decision_headers_describe_the_window() -> None:
    limiter, clock = _limiter(max_requests=5, window_seconds=900)
    limiter.hit("a")
    clock.now += 100.5

    headers = limiter.hit("a").headers()

    assert headers == {
        "RateLimit-Limit": "5",
        "RateLimit-Remaining": "3",
        "RateLimit-Reset": "800",
    }


def test_should_refund_honours_skip_flags() -> None:
    base = RateLimitRule(name="api", window_seconds=1, max_requests=1, message="x")
    skip_ok = RateLimitRule(
        name="api",
        window_seconds=1,
        max_requests=1,
        message="x",
        skip_successful_requests=True,
    )
    skip_failed = RateLimitRule(
        name="api",
        window_seconds=1,
        max_requests=1,
        message="x",
        skip_failed_requests=True,
    )

    assert should_refund(base, 200) is False
    assert should_refund(skip_ok, 200) is True
    assert should_refund(skip_ok, 500) is False
    assert should_refund(skip_failed, 404) is True
    assert should_refund(skip_failed, 201) is False


def test_chat_admission_session_layer_falls_back_to_origin(make_config) -> None:
    config = make_config(
        session_rate_limit=RateLimitSettings(window_seconds=900, max_requests=2)
    )
    admission = build_chat_admission(config, clock=_Clock())

    admission.admit(origin="10.0.0.1", session_id=None, read_only=False)
    admission.admit(origin="10.0.0.1", session_id=None, read_only=False)

    with pytest.raises(RateLimitExceeded) as exc_info:
        admission.admit(origin="10.0.0.1", session_id=None, read_only=False)
    assert exc_info.value.decision.rule.name == "session"

    decision = admission.admit(origin="10.0.0.1", session_id="s-1", read_only=False)
    assert decision.allowed is True


def test_chat_admission_skips_session_layer_for_reads(make_config) -> None:
    config = make_config(
        session_rate_limit=RateLimitSettings(window_seconds=900, max_requests=1)
    )
    admission = build_chat_admission(config, clock=_Clock())

    for _ in range(5):
        admission.admit(origin="10.0.0.1", session_id=None, read_only=True)


def test_chat_admission_checks_daily_layer_first(make_config) -> None:
    config = make_config(
        daily_rate_limit=RateLimitSettings(window_seconds=86400, max_requests=1)
    )
    admission = build_chat_admission(config, clock=_Clock())
    admission.admit(origin="10.0.0.1", session_id="s-1", read_only=False)

    with pytest.raises(RateLimitExceeded) as exc_info:
        admission.admit(origin="10.0.0.1", session_id="s-2", read_only=False)

    assert exc_info.value.decision.rule.name == "daily"
    assert "tomorrow" in str(exc_info.value)
    # Rejected before later layers were charged.
    assert admission.origin.hit("10.0.0.1").remaining == 48


def test_chat_admission_returns_tightest_decision(make_config) -> None:
    admission = build_chat_admission(make_config(), clock=_Clock())

    decision = admission.admit(origin="10.0.0.1", session_id="s-1", read_only=False)

    assert decision.rule.name == "session"
    assert decision.remaining == 19


def test_api_limiter_carries_accounting_flags(make_config) -> None:
    limiter = build_api_limiter(make_config(api_limit_skip_successful=True))

    assert limiter.rule.max_requests == 100
    assert limiter.rule.skip_successful_requests is True
    assert limiter.rule.skip_failed_requests is False
