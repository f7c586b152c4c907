"""
Per-subscriber admission control for the delivery API.

Fixed window: 10 requests per 60s per subscriber by default. State is
process-local and lost on restart; a multi-process deployment needs a
shared RateLimiter implementation instead of InMemoryRateLimiter.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from copier.errors import RateLimitExceeded, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of an admission check."""

    admitted: bool
    remaining: int
    retry_after: float


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter(ABC):
    """Admission control interface."""

    @abstractmethod
    def check(self, subscriber_id: Optional[str]) -> RateLimitDecision:
        """
        Count one request against subscriber_id.

        Raises:
            ValidationError: subscriber_id missing
        """
        pass

    def enforce(self, subscriber_id: Optional[str]) -> RateLimitDecision:
        """Like check(), but raises RateLimitExceeded on rejection."""
        decision = self.check(subscriber_id)
        if not decision.admitted:
            raise RateLimitExceeded(subscriber_id, decision.retry_after)
        return decision

    def reset(self) -> None:
        """Forget all windows."""
        pass


class InMemoryRateLimiter(RateLimiter):
    """Dict-backed fixed-window limiter for single-process deployments."""

    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit <= 0:
            raise ValueError(f"limit must be positive: {limit}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive: {window_seconds}")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def check(self, subscriber_id: Optional[str]) -> RateLimitDecision:
        if not subscriber_id or not str(subscriber_id).strip():
            raise ValidationError("subscriberId required")

        now = self._clock()
        with self._lock:
            if now - self._last_sweep > self.window_seconds:
                self._sweep(now)

            window = self._windows.get(subscriber_id)
            if window is None or now > window.reset_at:
                window = _Window(count=0, reset_at=now + self.window_seconds)
                self._windows[subscriber_id] = window

            if window.count >= self.limit:
                logger.warning(f"Rate limit exceeded for subscriber {subscriber_id}")
                return RateLimitDecision(
                    admitted=False, remaining=0, retry_after=max(0.0, window.reset_at - now)
                )

            window.count += 1
            return RateLimitDecision(
                admitted=True,
                remaining=self.limit - window.count,
                retry_after=0.0,
            )

    def _sweep(self, now: float) -> None:
        """Drop expired windows; caller holds the lock."""
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now
        if expired:
            logger.debug(f"Dropped {len(expired)} expired rate limit windows")

    def tracked(self) -> int:
        """Number of subscriber windows currently held."""
        with self._lock:
            return len(self._windows)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
