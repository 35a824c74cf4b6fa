"""
Polling scheduler, connection state and retry policies.
"""
from kpt_sync.services.polling.connection import ConnectionState, ConnectionStateTracker
from kpt_sync.services.polling.retry import (
    CircuitBreakerRetry,
    ExponentialBackoffRetry,
    FixedIntervalRetry,
    RetryPolicy,
)
from kpt_sync.services.polling.scheduler import (
    PollingScheduler,
    TickOutcome,
    validate_polling_config,
)

__all__ = [
    "ConnectionState",
    "ConnectionStateTracker",
    "CircuitBreakerRetry",
    "ExponentialBackoffRetry",
    "FixedIntervalRetry",
    "RetryPolicy",
    "PollingScheduler",
    "TickOutcome",
    "validate_polling_config",
]
