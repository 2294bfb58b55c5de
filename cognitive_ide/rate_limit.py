"""Tool-call rate limiter.

Three checks run in order and the first failure wins:

1. session cap     — total accepted calls for the lifetime of the state
2. per-minute cap  — sliding window over recent call timestamps
3. cooldown        — minimum gap since the last accepted call

The window is recomputed by filtering timestamps on every check, so the
stored list never grows past ``max_calls_per_minute`` live entries.
State lives in an explicit ``RateLimiterState`` owned by one gateway.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from cognitive_ide.errors import RateLimitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    max_calls_per_minute: int = 30
    max_calls_per_session: int = 100
    cooldown_ms: int = 2000
    window_ms: int = 60_000


@dataclass
class RateLimiterState:
    """Mutable counters.  Timestamps are milliseconds on the limiter's clock."""

    recent_call_timestamps: list[float] = field(default_factory=list)
    session_call_count: int = 0
    last_call_time: float | None = None


@dataclass(frozen=True)
class RateLimitStatus:
    calls_in_last_minute: int
    total_calls_in_session: int
    remaining_in_minute: int
    remaining_in_session: int


class RateLimiter:
    """Session / per-minute / cooldown limiter.

    Args:
        config: Limits to enforce.
        clock: Monotonic clock returning seconds (``time.monotonic`` by
            default).  Injected by tests.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or RateLimitConfig()
        self.state = RateLimiterState()
        self._clock = clock

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _prune(self, now: float) -> list[float]:
        cutoff = now - self.config.window_ms
        timestamps = [t for t in self.state.recent_call_timestamps if t > cutoff]
        self.state.recent_call_timestamps = timestamps
        return timestamps

    def check(self) -> None:
        """Raise ``RateLimitError`` if a call right now would be denied."""
        cfg = self.config
        now = self._now_ms()

        if self.state.session_call_count >= cfg.max_calls_per_session:
            raise RateLimitError(
                "session",
                f"Session limit exceeded: maximum {cfg.max_calls_per_session} tool calls per session",
                limit=cfg.max_calls_per_session,
            )

        if len(self._prune(now)) >= cfg.max_calls_per_minute:
            raise RateLimitError(
                "per_minute",
                f"Rate limit exceeded: maximum {cfg.max_calls_per_minute} tool calls per minute",
                limit=cfg.max_calls_per_minute,
            )

        last = self.state.last_call_time
        if last is not None and now - last < cfg.cooldown_ms:
            raise RateLimitError(
                "cooldown",
                f"Cooldown active: please wait {cfg.cooldown_ms}ms between calls",
                limit=cfg.cooldown_ms,
            )

    def is_allowed(self) -> bool:
        try:
            self.check()
        except RateLimitError:
            return False
        return True

    def record_call(self) -> None:
        """Count one accepted call."""
        now = self._now_ms()
        self._prune(now)
        self.state.recent_call_timestamps.append(now)
        self.state.session_call_count += 1
        self.state.last_call_time = now

    def acquire(self) -> None:
        """``check`` then ``record_call``."""
        self.check()
        self.record_call()

    def status(self) -> RateLimitStatus:
        in_window = len(self._prune(self._now_ms()))
        total = self.state.session_call_count
        return RateLimitStatus(
            calls_in_last_minute=in_window,
            total_calls_in_session=total,
            remaining_in_minute=max(0, self.config.max_calls_per_minute - in_window),
            remaining_in_session=max(0, self.config.max_calls_per_session - total),
        )

    def reset(self) -> None:
        self.state = RateLimiterState()
        logger.debug("[rate_limit] state reset")


__all__ = [
    "RateLimitConfig",
    "RateLimitStatus",
    "RateLimiter",
    "RateLimiterState",
]
