"""
Tests for brandsnap/retry.py.
"""

import asyncio

import pytest

from brandsnap.retry import RetryPolicy, compute_backoff_delay, with_retry
from brandsnap.config import CrawlerConfig


class Flaky:
    """Fails a fixed number of times, then returns a value."""

    def __init__(self, failures: int, error=ValueError):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return 'ok'


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class TestBackoff:
    """Delays grow linearly with the attempt index."""

    def test_linear(self):
        assert [compute_backoff_delay(i, 1.0) for i in range(3)] == [1.0, 2.0, 3.0]

    def test_policy_from_config(self):
        policy = RetryPolicy.from_crawler_config(CrawlerConfig(retry_attempts=4, retry_delay_ms=250))
        assert policy.attempts == 4
        assert policy.base_delay == 0.25


class TestWithRetry:
    """Bounded attempts, last error surfaces."""

    def test_succeeds_on_third_attempt(self):
        fn = Flaky(failures=2)
        sleep = RecordingSleep()
        result = asyncio.run(with_retry(fn, attempts=3, base_delay=1.0, sleep=sleep))
        assert result == 'ok'
        assert fn.calls == 3
        assert sleep.delays == [1.0, 2.0]

    def test_first_success_does_not_sleep(self):
        sleep = RecordingSleep()
        assert asyncio.run(with_retry(Flaky(failures=0), sleep=sleep)) == 'ok'
        assert sleep.delays == []

    def test_always_failing_raises_last_error(self):
        fn = Flaky(failures=10)
        sleep = RecordingSleep()
        with pytest.raises(ValueError, match='failure 3'):
            asyncio.run(with_retry(fn, attempts=3, base_delay=1.0, sleep=sleep))
        assert fn.calls == 3
        assert sleep.delays == [1.0, 2.0]

    def test_single_attempt(self):
        fn = Flaky(failures=1)
        with pytest.raises(ValueError):
            asyncio.run(with_retry(fn, attempts=1, sleep=RecordingSleep()))
        assert fn.calls == 1

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            asyncio.run(with_retry(Flaky(failures=0), attempts=0))

    def test_non_retryable_error_propagates_immediately(self):
        fn = Flaky(failures=5, error=KeyError)
        with pytest.raises(KeyError):
            asyncio.run(with_retry(fn, attempts=3, sleep=RecordingSleep(), retry_on=(ValueError,)))
        assert fn.calls == 1

    def test_deadline_stops_further_attempts(self):
        fn = Flaky(failures=10)
        sleep = RecordingSleep()
        now = [100.0]
        # Deadline 1.5s away: the first 1.0s backoff fits, the 2.0s one does not
        with pytest.raises(ValueError, match='failure 2'):
            asyncio.run(with_retry(
                fn,
                attempts=5,
                base_delay=1.0,
                deadline=101.5,
                sleep=sleep,
                clock=lambda: now[0],
            ))
        assert fn.calls == 2
        assert sleep.delays == [1.0]
