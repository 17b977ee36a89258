"""Tests for mailbridge.retry."""

from __future__ import annotations

import pytest

from mailbridge.config import RetryConfig
from mailbridge.retry import with_retry


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(max_attempts=3, initial_wait_seconds=0.0, max_wait_seconds=0.0)


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_first_try(self, fast_retry):
        calls = 0

        @with_retry(fast_retry, operation="connect")
        async def fn():
            nonlocal calls
            calls += 1
            return "client"

        assert await fn() == "client"
        assert calls == 1

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, fast_retry):
        calls = 0

        @with_retry(fast_retry, operation="subscribe")
        async def fn():
            nonlocal calls
            calls += 1
            if calls < 3:
                raise ConnectionError("transient")
            return "subscription"

        assert await fn() == "subscription"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_exhausts_and_reraises_last_error(self, fast_retry):
        calls = 0

        @with_retry(fast_retry)
        async def fn():
            nonlocal calls
            calls += 1
            raise ConnectionError(f"attempt {calls}")

        with pytest.raises(ConnectionError, match="attempt 3"):
            await fn()
        assert calls == 3

    @pytest.mark.asyncio
    async def test_non_retryable_fails_immediately(self, fast_retry):
        calls = 0

        @with_retry(fast_retry, retryable_exceptions=(ConnectionError,))
        async def fn():
            nonlocal calls
            calls += 1
            raise PermissionError("bad credentials")

        with pytest.raises(PermissionError):
            await fn()
        assert calls == 1

    def test_wraps_sync_functions(self, fast_retry):
        calls = 0

        @with_retry(fast_retry)
        def fn():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise OSError("once")
            return calls

        assert fn() == 2

    @pytest.mark.asyncio
    async def test_abort_if_stops_further_attempts(self, fast_retry):
        calls = 0
        wanted = True

        @with_retry(fast_retry, abort_if=lambda: not wanted)
        async def fn():
            nonlocal calls, wanted
            calls += 1
            wanted = False
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await fn()
        assert calls == 1
