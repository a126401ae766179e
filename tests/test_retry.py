"""
Tests for the retry helper.
"""
import asyncio
import importlib
from unittest.mock import AsyncMock

import pytest

from licensechain_polygon.exceptions import InvalidAmountError
from licensechain_polygon.retry import RetryPolicy, retry, retry_with_policy

# The package re-exports the retry function under the module name
retry_module = importlib.import_module("licensechain_polygon.retry")


@pytest.fixture
def no_sleep(monkeypatch):
    fake_sleep = AsyncMock()
    monkeypatch.setattr(retry_module.asyncio, "sleep", fake_sleep)
    return fake_sleep


class TestRetryPolicy:

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.base_delay_ms == 1000
        assert policy.attempt_timeout is None

    def test_backoff_schedule_doubles(self):
        policy = RetryPolicy(max_attempts=4, base_delay_ms=100)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [0.1, 0.2, 0.4]

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"base_delay_ms": -1},
        {"attempt_timeout": 0},
    ])
    def test_rejects_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestRetry:

    @pytest.mark.asyncio
    async def test_first_success_short_circuits(self, no_sleep):
        operation = AsyncMock(return_value="ok")

        assert await retry(operation) == "ok"
        assert operation.await_count == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, no_sleep):
        operation = AsyncMock(side_effect=[ConnectionError("reset"), ConnectionError("reset"), 42])

        assert await retry(operation, max_attempts=3, base_delay_ms=1000) == 42
        assert operation.await_count == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_reraises_last_error_after_cap(self, no_sleep):
        errors = [ConnectionError("first"), ConnectionError("second"), ConnectionError("third")]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(ConnectionError, match="third"):
            await retry(operation, max_attempts=3, base_delay_ms=10)

        assert operation.await_count == 3
        # no sleep after the final attempt
        assert no_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self, no_sleep):
        operation = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await retry(operation, max_attempts=1)

        assert operation.await_count == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_errors_pass_through_unchanged(self, no_sleep):
        error = InvalidAmountError("0")
        operation = AsyncMock(side_effect=error)

        with pytest.raises(InvalidAmountError) as exc_info:
            await retry(operation, max_attempts=2, base_delay_ms=0)

        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_per_attempt_timeout(self):
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) == 1:
                await asyncio.sleep(10)
            return "second"

        policy = RetryPolicy(max_attempts=2, base_delay_ms=0, attempt_timeout=0.05)
        assert await retry_with_policy(operation, policy) == "second"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self):
        async def operation():
            await asyncio.sleep(10)

        with pytest.raises(asyncio.TimeoutError):
            await retry(operation, max_attempts=2, base_delay_ms=0, timeout=0.01)
