"""
Unit tests for bounded retry (retry.py).
"""
import asyncio

import pytest

from exam_generator.core.retry import backoff_delay, is_retryable, retry_with_backoff
from exam_generator.exceptions import MalformedOutputError, TransportError


class FlakyOperation:
    """Fails with the given errors, then returns "ok"."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def run(operation, **kwargs):
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    result = asyncio.run(retry_with_backoff(operation, sleep=fake_sleep, **kwargs))
    return result, delays


@pytest.mark.unit
class TestBackoffDelay:
    def test_exponential_curve(self):
        assert [backoff_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_maximum(self):
        assert backoff_delay(10) == 30.0
        assert backoff_delay(3, initial=5, multiplier=3, maximum=20) == 20

    def test_attempt_numbers_start_at_one(self):
        with pytest.raises(ValueError):
            backoff_delay(0)


@pytest.mark.unit
class TestRetryWithBackoff:
    def test_succeeds_after_transient_failures(self):
        operation = FlakyOperation(TransportError("timeout"), TransportError("503"))
        result, delays = run(operation, max_attempts=3)

        assert result == "ok"
        assert operation.calls == 3
        assert delays == [1.0, 2.0]

    def test_gives_up_after_max_attempts(self):
        operation = FlakyOperation(*[TransportError("rate limited") for _ in range(5)])
        with pytest.raises(TransportError):
            run(operation, max_attempts=3)
        assert operation.calls == 3

    def test_terminal_error_not_retried(self):
        operation = FlakyOperation(MalformedOutputError("not JSON"))
        with pytest.raises(MalformedOutputError):
            run(operation, max_attempts=3)
        assert operation.calls == 1

    def test_foreign_transient_error_is_retried(self):
        operation = FlakyOperation(ConnectionError("429 Too Many Requests"))
        result, delays = run(operation, max_attempts=3)

        assert result == "ok"
        assert operation.calls == 2
        assert delays == [1.0]

    def test_foreign_error_without_marker_not_retried(self):
        operation = FlakyOperation(KeyError("questions"))
        with pytest.raises(KeyError):
            run(operation, max_attempts=3)
        assert operation.calls == 1

    def test_single_attempt(self):
        operation = FlakyOperation(TransportError("timeout"))
        with pytest.raises(TransportError):
            run(operation, max_attempts=1)
        assert operation.calls == 1

    def test_invalid_attempt_limit(self):
        with pytest.raises(ValueError):
            run(FlakyOperation(), max_attempts=0)


@pytest.mark.unit
class TestIsRetryable:
    def test_pipeline_errors_use_their_flag(self):
        assert is_retryable(TransportError("x")) is True
        assert is_retryable(MalformedOutputError("x")) is False

    def test_foreign_errors_matched_by_message(self):
        assert is_retryable(RuntimeError("429 Too Many Requests")) is True
        assert is_retryable(RuntimeError("fetch failed: ECONNRESET")) is True
        assert is_retryable(ValueError("bad argument")) is False
