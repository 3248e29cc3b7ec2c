"""Tests for the timeout and log back-off helpers."""

import asyncio

import pytest

from fritzwatch.backoff import ErrorThrottle, with_timeout
from fritzwatch.errors import QueryTimeoutError


class TestErrorThrottle:
    def test_threshold_one_logs_every_time(self):
        throttle = ErrorThrottle()
        assert [throttle.record() for _ in range(3)] == [True, True, True]
        assert throttle.count == 0

    def test_every_sixth_occurrence(self):
        throttle = ErrorThrottle(6)
        results = [throttle.record() for _ in range(12)]
        assert results == [False] * 5 + [True] + [False] * 5 + [True]

    def test_reset(self):
        throttle = ErrorThrottle(6)
        throttle.record()
        throttle.record()
        assert throttle.count == 2
        throttle.reset()
        assert throttle.count == 0

    def test_threshold_below_one_is_clamped(self):
        assert ErrorThrottle(0).threshold == 1


class TestWithTimeout:
    @pytest.mark.asyncio
    async def test_returns_value(self):
        async def _answer():
            return 42

        assert await with_timeout(_answer(), 1) == 42

    @pytest.mark.asyncio
    async def test_expired_deadline_raises_query_timeout(self):
        with pytest.raises(QueryTimeoutError):
            await with_timeout(asyncio.sleep(1), 0.01)

    @pytest.mark.asyncio
    async def test_no_deadline(self):
        async def _answer():
            return "ok"

        assert await with_timeout(_answer(), None) == "ok"
