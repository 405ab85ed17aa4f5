"""
Tests for bizagent/utils/throttle.py - outbound call pacing.
"""
from unittest.mock import AsyncMock, patch

import pytest

from bizagent.utils.throttle import (
    FixedDelayThrottle,
    NoThrottle,
    TokenBucketThrottle,
    build_throttle,
)


class TestBuildThrottle:
    def test_policies(self):
        assert isinstance(build_throttle("fixed", 0.5), FixedDelayThrottle)
        assert isinstance(build_throttle("token_bucket", 0.5, 3), TokenBucketThrottle)
        assert isinstance(build_throttle("none"), NoThrottle)

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            build_throttle("adaptive")


class TestFixedDelayThrottle:
    async def test_sleeps_fixed_delay(self):
        throttle = FixedDelayThrottle(1.0)
        with patch("bizagent.utils.throttle.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await throttle.wait()
        mock_sleep.assert_awaited_once_with(1.0)

    async def test_backoff_extends_delay(self):
        """A provider Retry-After longer than the delay wins."""
        throttle = FixedDelayThrottle(1.0)
        throttle.backoff(30.0)
        with patch("bizagent.utils.throttle.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await throttle.wait()
        slept = mock_sleep.await_args.args[0]
        assert 29.0 < slept <= 30.0


class TestNoThrottle:
    async def test_never_sleeps(self):
        throttle = NoThrottle()
        with patch("bizagent.utils.throttle.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await throttle.wait()
        mock_sleep.assert_not_called()

    async def test_still_honours_backoff(self):
        throttle = NoThrottle()
        throttle.backoff(5.0)
        with patch("bizagent.utils.throttle.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await throttle.wait()
        mock_sleep.assert_awaited_once()

    def test_ignores_empty_retry_after(self):
        throttle = NoThrottle()
        throttle.backoff(None)
        throttle.backoff(0)
        assert throttle._penalty_until == 0.0


class TestTokenBucketThrottle:
    async def test_burst_then_paced(self):
        """The first `burst` calls pass freely, the next one waits."""
        throttle = TokenBucketThrottle(interval_seconds=10.0, burst=3)
        with patch("bizagent.utils.throttle.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            for _ in range(3):
                await throttle.wait()
            assert mock_sleep.await_count == 0
            await throttle.wait()
        assert mock_sleep.await_count == 1
        assert mock_sleep.await_args.args[0] > 9.0
