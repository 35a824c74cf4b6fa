"""
Circuit breaker state machine for polling retry decisions.

Tracks consecutive tick failures and decides when the poller should back off
for a recovery window instead of hammering an unhealthy backend.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import structlog

logger = structlog.get_logger()


class CircuitState(Enum):
    CLOSED = "closed"      # Normal polling
    OPEN = "open"          # Waiting out the recovery window
    HALF_OPEN = "half_open"  # Probing after recovery window


@dataclass
class CircuitBreaker:
    """
    Circuit breaker driven by recorded outcomes.

    States:
    - CLOSED: Normal operation, ticks run at the configured interval
    - OPEN: Backend unhealthy, wait until the recovery timeout passes
    - HALF_OPEN: Testing if the backend recovered

    Usage:
        breaker = CircuitBreaker(name="notifications")

        if breaker.allow_request():
            ...
            breaker.record_success()
    """
    name: str
    failure_threshold: int = 5       # Failures before opening
    recovery_timeout: float = 30.0   # Seconds before trying half-open
    half_open_requests: int = 1      # Successful trial requests to close
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    # State
    state: CircuitState = field(default=CircuitState.CLOSED)
    failure_count: int = field(default=0)
    success_count: int = field(default=0)
    last_failure_time: Optional[float] = field(default=None)

    def allow_request(self) -> bool:
        """Return True if a request may go out now, entering half-open if due."""
        if self.state == CircuitState.OPEN:
            if not self._should_attempt_recovery():
                return False
            self.state = CircuitState.HALF_OPEN
            self.success_count = 0
            logger.info("Circuit entering half-open state", circuit=self.name)
        return True

    def time_until_recovery(self) -> float:
        if self.last_failure_time is None:
            return 0.0
        elapsed = self.clock() - self.last_failure_time
        return max(0.0, self.recovery_timeout - elapsed)

    def _should_attempt_recovery(self) -> bool:
        if self.last_failure_time is None:
            return True
        return self.clock() - self.last_failure_time >= self.recovery_timeout

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = self.clock()

        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.OPEN
            logger.warning("Circuit reopened after half-open failure", circuit=self.name)
        elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self.state = CircuitState.OPEN
            logger.warning(
                "Circuit opened",
                circuit=self.name,
                failures=self.failure_count,
            )

    def record_success(self):
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.half_open_requests:
                self.state = CircuitState.CLOSED
                self.failure_count = 0
                logger.info("Circuit closed after successful recovery", circuit=self.name)
        else:
            self.failure_count = 0

    def reset(self):
        """Manually reset the circuit breaker to closed state."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None
        logger.info("Circuit manually reset", circuit=self.name)
