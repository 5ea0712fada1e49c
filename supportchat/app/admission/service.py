from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from supportchat.app.admission.contracts import RateLimitDecision, RateLimitRule
from supportchat.core.config import AppConfig

LOGGER = logging.getLogger(__name__)

SWEEP_THRESHOLD = 1024


class RateLimitExceeded(Exception):
    def __init__(self, decision: RateLimitDecision) -> None:
        super().__init__(decision.rule.message)
        self.decision = decision


@dataclass
class _Window:
    started_at: float
    count: int


class FixedWindowRateLimiter:
    """Counts hits per key in fixed windows of ``rule.window_seconds``."""

    def __init__(
        self, rule: RateLimitRule, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.rule = rule
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def _current_window(self, key: str, now: float) -> _Window:
        window = self._windows.get(key)
        if window is None or now - window.started_at >= self.rule.window_seconds:
            window = _Window(started_at=now, count=0)
            self._windows[key] = window
        return window

    def _sweep(self, now: float) -> None:
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.started_at >= self.rule.window_seconds
        ]
        for key in expired:
            self._windows.pop(key, None)

    def hit(self, key: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            if len(self._windows) >= SWEEP_THRESHOLD:
                self._sweep(now)
            window = self._current_window(key, now)
            allowed = window.count < self.rule.max_requests
            if allowed:
                window.count += 1
            reset_after = window.started_at + self.rule.window_seconds - now
            return RateLimitDecision(
                rule=self.rule,
                key=key,
                allowed=allowed,
                remaining=max(0, self.rule.max_requests - window.count),
                reset_after_seconds=max(0.0, reset_after),
                window_started_at=window.started_at,
            )

    def refund(self, decision: RateLimitDecision) -> None:
        """Give back the slot ``decision`` took, if its window is still current."""
        with self._lock:
            window = self._windows.get(decision.key)
            if window is None or window.started_at != decision.window_started_at:
                return
            if window.count > 0:
                window.count -= 1


def enforce(limiter: FixedWindowRateLimiter, key: str) -> RateLimitDecision:
    decision = limiter.hit(key)
    if not decision.allowed:
        LOGGER.warning("Rate limit %s rejected key %s", limiter.rule.name, key)
        raise RateLimitExceeded(decision)
    return decision


def should_refund(rule: RateLimitRule, status_code: int) -> bool:
    if rule.skip_successful_requests and status_code < 400:
        return True
    if rule.skip_failed_requests and status_code >= 400:
        return True
    return False


class ChatAdmission:
    """Daily, per-origin and per-session layers for chat routes, in that order."""

    def __init__(
        self,
        *,
        daily: FixedWindowRateLimiter,
        origin: FixedWindowRateLimiter,
        session: FixedWindowRateLimiter,
    ) -> None:
        self.daily = daily
        self.origin = origin
        self.session = session

    def admit(
        self, *, origin: str, session_id: str | None, read_only: bool
    ) -> RateLimitDecision:
        """Charge every layer; return the tightest decision or raise."""
        decisions = [enforce(self.daily, origin), enforce(self.origin, origin)]
        if not read_only:
            decisions.append(enforce(self.session, session_id or origin))
        return min(decisions, key=lambda decision: decision.remaining)


def build_api_limiter(
    config: AppConfig, *, clock: Callable[[], float] = time.monotonic
) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(
        RateLimitRule(
            name="api",
            window_seconds=config.api_rate_limit.window_seconds,
            max_requests=config.api_rate_limit.max_requests,
            message="Too many requests from this IP, please try again later.",
            skip_successful_requests=config.api_limit_skip_successful,
            skip_failed_requests=config.api_limit_skip_failed,
        ),
        clock=clock,
    )


def build_chat_admission(
    config: AppConfig, *, clock: Callable[[], float] = time.monotonic
) -> ChatAdmission:
    return ChatAdmission(
        daily=FixedWindowRateLimiter(
            RateLimitRule(
                name="daily",
                window_seconds=config.daily_rate_limit.window_seconds,
                max_requests=config.daily_rate_limit.max_requests,
                message="Daily request limit exceeded. Please try again tomorrow.",
            ),
            clock=clock,
        ),
        origin=FixedWindowRateLimiter(
            RateLimitRule(
                name="chat",
                window_seconds=config.origin_rate_limit.window_seconds,
                max_requests=config.origin_rate_limit.max_requests,
                message="Too many chat requests, please try again later.",
            ),
            clock=clock,
        ),
        session=FixedWindowRateLimiter(
            RateLimitRule(
                name="session",
                window_seconds=config.session_rate_limit.window_seconds,
                max_requests=config.session_rate_limit.max_requests,
                message=(
                    "Too many requests for this session. "
                    "Please wait before sending another message."
                ),
            ),
            clock=clock,
        ),
    )
