"""
Outbound throttles for calendar provider calls.

Bulk slot generation awaits `throttle.wait()` after every remote call,
successful or not. Policies:

- FixedDelayThrottle  - flat pause between calls (default 1s)
- TokenBucketThrottle - allows short bursts, refills at a steady rate
- NoThrottle          - never sleeps (tests, local in-memory provider)

Every policy also honours a provider-reported Retry-After via `backoff()`:
the next `wait()` sleeps at least that long.
"""
import asyncio
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 1.0
DEFAULT_BURST = 5


class Throttle:
    """Base throttle. Subclasses implement `_delay()`."""

    def __init__(self):
        self._penalty_until: float = 0.0

    def backoff(self, retry_after: Optional[float]) -> None:
        """Push the next call out by at least `retry_after` seconds."""
        if not retry_after or retry_after <= 0:
            return
        until = time.monotonic() + retry_after
        if until > self._penalty_until:
            self._penalty_until = until
            logger.warning("Calendar provider asked to back off for %.1fs", retry_after)

    async def wait(self) -> None:
        delay = self._delay()
        penalty = self._penalty_until - time.monotonic()
        if penalty > delay:
            delay = penalty
        if delay > 0:
            await asyncio.sleep(delay)

    def _delay(self) -> float:
        raise NotImplementedError


class FixedDelayThrottle(Throttle):
    """Sleep the same fixed delay after every call."""

    def __init__(self, delay_seconds: float = DEFAULT_DELAY_SECONDS):
        super().__init__()
        self.delay_seconds = delay_seconds

    def _delay(self) -> float:
        return self.delay_seconds


class TokenBucketThrottle(Throttle):
    """
    Token bucket: `burst` calls go through back-to-back, then one call per
    `interval_seconds` as tokens refill.
    """

    def __init__(self, interval_seconds: float = DEFAULT_DELAY_SECONDS, burst: int = DEFAULT_BURST):
        super().__init__()
        self.interval_seconds = interval_seconds
        self.capacity = max(burst, 1)
        self._tokens = float(self.capacity)
        self._updated = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        if self.interval_seconds > 0:
            self._tokens = min(
                float(self.capacity),
                self._tokens + (now - self._updated) / self.interval_seconds,
            )
        else:
            self._tokens = float(self.capacity)
        self._updated = now

    def _delay(self) -> float:
        self._refill()
        # One token is spent per completed call
        self._tokens -= 1
        if self._tokens >= 0:
            return 0.0
        return -self._tokens * self.interval_seconds


class NoThrottle(Throttle):
    """Never waits, except when the provider explicitly asks to back off."""

    def _delay(self) -> float:
        return 0.0


def build_throttle(policy: str, delay_seconds: float = DEFAULT_DELAY_SECONDS, burst: int = DEFAULT_BURST) -> Throttle:
    """Create the throttle named by the `calendar_throttle_policy` setting."""
    if policy == "fixed":
        return FixedDelayThrottle(delay_seconds)
    if policy == "token_bucket":
        return TokenBucketThrottle(delay_seconds, burst)
    if policy == "none":
        return NoThrottle()
    raise ValueError(f"Unknown throttle policy: {policy}")
