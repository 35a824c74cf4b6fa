"""Tests for polling retry policies."""
import pytest

from kpt_sync.core.circuit_breaker import CircuitState
from kpt_sync.services.polling.retry import (
    CircuitBreakerRetry,
    ExponentialBackoffRetry,
    FixedIntervalRetry,
)


def test_fixed_interval_ignores_failures():
    policy = FixedIntervalRetry()

    assert policy.next_delay(30, 0) == 30
    assert policy.next_delay(30, 10) == 30


class TestExponentialBackoff:
    def test_no_failures_uses_interval(self):
        assert ExponentialBackoffRetry().next_delay(30, 0) == 30

    def test_delay_grows_per_failure(self):
        policy = ExponentialBackoffRetry(factor=2.0, max_delay=1000)

        assert policy.next_delay(30, 1) == 60
        assert policy.next_delay(30, 3) == 240

    def test_delay_is_capped(self):
        policy = ExponentialBackoffRetry(factor=2.0, max_delay=300)

        assert policy.next_delay(30, 10) == 300


class TestCircuitBreakerRetry:
    @pytest.fixture
    def policy(self, fake_clock):
        return CircuitBreakerRetry(failure_threshold=2, recovery_timeout=120, clock=fake_clock)

    def test_closed_uses_interval(self, policy):
        policy.record_failure()

        assert policy.next_delay(30, 1) == 30
        assert policy.state == CircuitState.CLOSED

    def test_open_waits_for_recovery(self, policy):
        policy.record_failure()
        policy.record_failure()

        assert policy.state == CircuitState.OPEN
        assert policy.next_delay(30, 2) == 120

    def test_successful_trial_closes(self, policy, fake_clock):
        policy.record_failure()
        policy.record_failure()
        fake_clock.advance(120)

        policy.record_success()

        assert policy.state == CircuitState.CLOSED
        assert policy.next_delay(30, 0) == 30

    def test_failed_trial_reopens(self, policy, fake_clock):
        policy.record_failure()
        policy.record_failure()
        fake_clock.advance(120)

        policy.record_failure()

        assert policy.state == CircuitState.OPEN
        assert policy.next_delay(30, 3) == 120

    def test_reset(self, policy):
        policy.record_failure()
        policy.record_failure()

        policy.reset()

        assert policy.state == CircuitState.CLOSED
