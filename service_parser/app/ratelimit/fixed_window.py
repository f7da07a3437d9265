"""
Fixed-window rate limiter for the Parser service.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from shared.logging import get_logger


@dataclass
class RateWindow:
    """Request counter for one identity within the current window."""
    count: int
    reset_at: float


@dataclass
class RateLimitDecision:
    """Outcome of a single rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_in_seconds: int


class FixedWindowRateLimiter:
    """In-memory fixed-window counter keyed by client identity.

    Windows are created lazily and live for the lifetime of the process.
    Bursts straddling a window boundary are not smoothed.
    """

    def __init__(self, limit: int = 100, window_seconds: float = 3600.0,
                 clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self.logger = get_logger("parser.rate_limiter")

    def check(self, identity: str) -> RateLimitDecision:
        """Count a request for identity and report whether it is allowed."""
        now = self._clock()
        window = self._windows.get(identity)
        if window is None:
            window = RateWindow(count=0, reset_at=now + self.window_seconds)
            self._windows[identity] = window

        if now > window.reset_at:
            window.count = 0
            window.reset_at = now + self.window_seconds

        reset_in = max(0, int(window.reset_at - now))

        if window.count >= self.limit:
            self.logger.warning(
                "Rate limit exceeded",
                identity=identity,
                current_count=window.count,
                limit=self.limit
            )
            return RateLimitDecision(allowed=False, limit=self.limit, remaining=0, reset_in_seconds=reset_in)

        window.count += 1
        return RateLimitDecision(
            allowed=True,
            limit=self.limit,
            remaining=self.limit - window.count,
            reset_in_seconds=reset_in
        )

    def allow(self, identity: str) -> bool:
        """Return True if the request from identity fits in its window."""
        return self.check(identity).allowed

    def get_window(self, identity: str) -> Optional[RateWindow]:
        """Current window for identity, if one exists."""
        return self._windows.get(identity)

    def reset(self, identity: str) -> None:
        """Forget the window for identity."""
        self._windows.pop(identity, None)
