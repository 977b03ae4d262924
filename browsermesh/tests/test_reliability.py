"""
Unit Tests: Retry Policy and Best-Effort Combinators

Tests:
    - Backoff schedule doubling and capping
    - Policy validation
    - retry_with_backoff success, recovery and exhaustion
    - best_effort never raising for ordinary exceptions
"""

import asyncio

import pytest

from browsermesh.core.errors import (
    ErrorCode,
    ReliabilityError,
    SessionNotFoundError,
)
from browsermesh.core.types import Ok, Err
from browsermesh.reliability import RetryPolicy, best_effort, calculate_backoff, retry_with_backoff
from browsermesh.tests.conftest import RecordingSleep


class TestRetryPolicy:
    """Tests for the policy value object."""

    def test_default_schedule(self):
        assert RetryPolicy().schedule_ms() == [100, 200]

    def test_schedule_caps_at_max_delay(self):
        policy = RetryPolicy(max_attempts=6, base_delay_ms=100, max_delay_ms=500)
        assert policy.schedule_ms() == [100, 200, 400, 500, 500]

    def test_single_attempt_has_no_delays(self):
        assert RetryPolicy.no_retry().schedule_ms() == []

    def test_jitter_stays_within_bound(self):
        for attempt in range(5):
            delay = calculate_backoff(attempt, 100, 1000, 2.0, jitter=True)
            assert 0 <= delay <= min(1000, 100 * 2 ** attempt)

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"base_delay_ms": -1},
        {"base_delay_ms": 500, "max_delay_ms": 100},
        {"backoff_multiplier": 0.5},
    ])
    def test_invalid_policy_rejected(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestRetryWithBackoff:
    """Tests for the retry combinator."""

    @pytest.mark.asyncio
    async def test_first_attempt_success(self):
        sleep = RecordingSleep()

        async def op():
            return "done"

        result = await retry_with_backoff(op, sleep=sleep)

        assert result == Ok("done")
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_failures(self):
        sleep = RecordingSleep()
        attempts = []

        async def op():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("flaky")
            return len(attempts)

        result = await retry_with_backoff(op, RetryPolicy(max_attempts=3), sleep=sleep)

        assert result.unwrap() == 3
        assert sleep.delays == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_exhaustion_returns_last_error(self):
        sleep = RecordingSleep()
        calls = []

        async def op():
            calls.append(1)
            raise ConnectionError(f"failure {len(calls)}")

        result = await retry_with_backoff(op, RetryPolicy(max_attempts=4), sleep=sleep)

        assert result.is_err()
        error = result.error
        assert isinstance(error, ReliabilityError)
        assert error.code is ErrorCode.RELIABILITY_RETRY_EXHAUSTED
        assert error.context["attempts"] == 4
        assert str(error.cause) == "failure 4"
        assert len(sleep.delays) == 3

    @pytest.mark.asyncio
    async def test_non_retryable_stops_immediately(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(non_retryable_exceptions=(PermissionError,))

        async def op():
            raise PermissionError("denied")

        result = await retry_with_backoff(op, policy, sleep=sleep)

        assert result.is_err()
        assert result.error.context["attempts"] == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        async def op():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await retry_with_backoff(op, sleep=RecordingSleep())


class TestBestEffort:
    """Tests for the try/log/continue combinator."""

    @pytest.mark.asyncio
    async def test_plain_value_wrapped(self):
        async def op():
            return 42

        assert await best_effort(op, "answer") == Ok(42)

    @pytest.mark.asyncio
    async def test_exception_becomes_err(self):
        async def op():
            raise RuntimeError("boom")

        result = await best_effort(op, "explode", session_id="s1")

        assert result.is_err()
        assert result.error.code is ErrorCode.RELIABILITY_OPERATION_FAILED
        assert result.error.context["operation"] == "explode"
        assert isinstance(result.error.cause, RuntimeError)

    @pytest.mark.asyncio
    async def test_result_passthrough(self):
        missing = SessionNotFoundError.missing("s1")

        async def ok_op():
            return Ok("fine")

        async def err_op():
            return Err(missing)

        assert await best_effort(ok_op, "ok") == Ok("fine")
        result = await best_effort(err_op, "err")
        assert result.error is missing

    @pytest.mark.asyncio
    async def test_foreign_err_is_wrapped(self):
        async def op():
            return Err("plain message")

        result = await best_effort(op, "legacy")

        assert isinstance(result.error, ReliabilityError)
        assert "plain message" in result.error.message

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        async def op():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await best_effort(op, "cancelled")
