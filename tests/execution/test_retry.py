"""Tests for retry strategies."""

import pytest

from orderstream.core.errors import PermanentError, RetryableError
from orderstream.execution.retry import ExponentialBackoff, NoRetry, RetryContext


class TestExponentialBackoff:
    """Tests for ExponentialBackoff strategy."""

    def test_default_configuration(self):
        strategy = ExponentialBackoff()
        assert strategy.max_retries == 3
        assert strategy.base_delay == 1.0
        assert strategy.max_delay == 60.0
        assert strategy.jitter is True

    def test_delays_without_jitter(self):
        strategy = ExponentialBackoff(base_delay=1.0, jitter=False)
        assert [strategy.next_delay(a) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_is_capped(self):
        strategy = ExponentialBackoff(base_delay=1.0, max_delay=5.0, jitter=False)
        assert strategy.next_delay(10) == 5.0

    def test_jitter_stays_in_range(self):
        strategy = ExponentialBackoff(base_delay=4.0, jitter=True, jitter_range=0.25)
        for _ in range(50):
            assert 3.0 <= strategy.next_delay(0) <= 5.0

    def test_only_retryable_errors_are_retried(self):
        strategy = ExponentialBackoff(max_retries=3)
        assert strategy.should_retry(0, RetryableError("x")) is True
        assert strategy.should_retry(0, PermanentError("x")) is False
        assert strategy.should_retry(0, ValueError()) is False

    def test_retry_all(self):
        strategy = ExponentialBackoff(max_retries=3, retry_all=True)
        assert strategy.should_retry(0, ValueError()) is True

    def test_limit(self):
        strategy = ExponentialBackoff(max_retries=3)
        assert strategy.should_retry(2, RetryableError("x")) is True
        assert strategy.should_retry(3, RetryableError("x")) is False


class TestNoRetry:
    def test_never_retries(self):
        assert NoRetry().should_retry(0, RetryableError("x")) is False
        assert NoRetry().next_delay(0) == 0.0


class TestRetryContext:
    """Tests for RetryContext.run()."""

    def test_returns_first_success(self):
        ctx = RetryContext(ExponentialBackoff(), sleep=lambda s: None)
        assert ctx.run(lambda: "ok") == "ok"
        assert ctx.attempts == 1

    def test_retries_transient_failures(self):
        outcomes = [RetryableError("1"), RetryableError("2"), "done"]
        sleeps = []

        def flaky():
            value = outcomes.pop(0)
            if isinstance(value, Exception):
                raise value
            return value

        ctx = RetryContext(ExponentialBackoff(jitter=False), sleep=sleeps.append)
        assert ctx.run(flaky) == "done"
        assert ctx.attempts == 3
        assert sleeps == [1.0, 2.0]
        assert len(ctx.errors) == 2

    def test_gives_up_after_max_retries(self):
        calls = []

        def always_fails():
            calls.append(1)
            raise RetryableError("down")

        ctx = RetryContext(ExponentialBackoff(max_retries=3, jitter=False), sleep=lambda s: None)
        with pytest.raises(RetryableError):
            ctx.run(always_fails)
        assert len(calls) == 4

    def test_permanent_error_is_not_retried(self):
        calls = []

        def rejected():
            calls.append(1)
            raise PermanentError("bad input")

        ctx = RetryContext(ExponentialBackoff(), sleep=lambda s: None)
        with pytest.raises(PermanentError):
            ctx.run(rejected)
        assert len(calls) == 1

    def test_on_retry_callback(self):
        seen = []
        outcomes = [RetryableError("1"), "ok"]

        def flaky():
            value = outcomes.pop(0)
            if isinstance(value, Exception):
                raise value
            return value

        ctx = RetryContext(
            ExponentialBackoff(jitter=False),
            on_retry=lambda attempt, error, delay: seen.append((attempt, delay)),
            sleep=lambda s: None,
        )
        ctx.run(flaky)
        assert seen == [(1, 1.0)]
