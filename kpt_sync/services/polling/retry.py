"""
Retry policies for the polling scheduler.

A policy picks the delay before the next tick from the configured interval
and the number of consecutive failed ticks. The scheduler's loop is the same
whichever policy is plugged in.
"""
import time
from typing import Callable

from kpt_sync.core.circuit_breaker import CircuitBreaker, CircuitState


class RetryPolicy:
    """Base policy: hook points the scheduler calls after every tick."""

    def next_delay(self, interval: float, consecutive_failures: int) -> float:
        raise NotImplementedError

    def record_success(self):
        pass

    def record_failure(self):
        pass

    def reset(self):
        pass


class FixedIntervalRetry(RetryPolicy):
    """Always retry at the configured interval. No backoff."""

    def next_delay(self, interval: float, consecutive_failures: int) -> float:
        return interval


class ExponentialBackoffRetry(RetryPolicy):
    """
    Multiply the interval by ``factor`` per consecutive failure.

    Usage:
        policy = ExponentialBackoffRetry(factor=2.0, max_delay=300)
        policy.next_delay(30, 0)  # 30
        policy.next_delay(30, 2)  # 120
    """

    def __init__(self, factor: float = 2.0, max_delay: float = 300.0):
        self.factor = factor
        self.max_delay = max_delay

    def next_delay(self, interval: float, consecutive_failures: int) -> float:
        if consecutive_failures <= 0:
            return interval
        return min(interval * (self.factor ** consecutive_failures), max(self.max_delay, interval))


class CircuitBreakerRetry(RetryPolicy):
    """
    Poll normally until ``failure_threshold`` consecutive failures, then wait
    out ``recovery_timeout`` before probing again.
    """

    def __init__(
        self,
        name: str = "polling",
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        half_open_requests: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.breaker = CircuitBreaker(
            name=name,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            half_open_requests=half_open_requests,
            clock=clock,
        )

    def next_delay(self, interval: float, consecutive_failures: int) -> float:
        if self.breaker.allow_request():
            return interval
        return max(interval, self.breaker.time_until_recovery())

    @property
    def state(self) -> CircuitState:
        return self.breaker.state

    def record_success(self):
        # A tick that ran after the recovery window is the half-open trial
        self.breaker.allow_request()
        self.breaker.record_success()

    def record_failure(self):
        self.breaker.allow_request()
        self.breaker.record_failure()

    def reset(self):
        self.breaker.reset()
