"""
Bounded-lifetime polling scheduler.

Runs a repeating fetch loop on the event loop with:
- at most one fetch in flight per scheduler (extra ticks are skipped, not queued)
- an optional wall-clock budget (auto_stop / max_duration), enforced by its
  own timer and on every status read, not only when a tick starts
- a pluggable retry policy deciding the delay after each tick
- a request-generation token so responses issued before the latest
  stop()/start() boundary are discarded instead of applied
"""
import asyncio
import time
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Optional, TypeVar

import structlog
from pydantic import ValidationError as SchemaValidationError

from kpt_sync.core.config import settings
from kpt_sync.core.exceptions import NetworkError, SyncError, ValidationError
from kpt_sync.schemas.polling import PollingConfig, PollingSession, SessionStatus
from kpt_sync.services.polling.connection import ConnectionStateTracker
from kpt_sync.services.polling.retry import FixedIntervalRetry, RetryPolicy

logger = structlog.get_logger()

T = TypeVar("T")


class TickOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"      # Previous fetch still in flight
    DISCARDED = "discarded"  # Response arrived after a stop()/start() boundary
    STOPPED = "stopped"      # Scheduler inactive or budget exhausted


def validate_polling_config(config: PollingConfig, min_interval: float) -> None:
    """
    Reject out-of-range polling configs before anything is scheduled.

    Raises:
        ValidationError: If interval is below the floor or max_duration is not positive
    """
    if config.interval < min_interval:
        raise ValidationError(
            f"Polling interval {config.interval}s is below the minimum of {min_interval}s",
            field="interval",
        )
    if config.max_duration <= 0:
        raise ValidationError(
            f"max_duration must be positive, got {config.max_duration}",
            field="max_duration",
        )


class PollingScheduler(Generic[T]):
    """
    Repeating, time-boxed fetch loop.

    ``fetch`` performs the network call and returns a payload; ``on_success``
    commits it. Keeping the two apart lets the scheduler drop payloads from a
    previous generation without them ever touching shared state.

    Usage:
        scheduler = PollingScheduler(fetch=feed.request, on_success=feed.apply)

        async with scheduler.running(PollingConfig(interval=30)):
            ...
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        on_success: Optional[Callable[[T], Any]] = None,
        *,
        name: str = "poller",
        tracker: Optional[ConnectionStateTracker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        in_flight_timeout: Optional[float] = None,
        min_interval: Optional[float] = None,
    ):
        self.name = name
        self.tracker = tracker or ConnectionStateTracker(name)
        self.retry_policy = retry_policy or FixedIntervalRetry()
        self.session = PollingSession()

        self._fetch = fetch
        self._on_success = on_success
        self._clock = clock
        self._sleep = sleep
        self._in_flight_timeout = in_flight_timeout or settings.in_flight_timeout
        self._min_interval = settings.min_poll_interval if min_interval is None else min_interval

        self._config: Optional[PollingConfig] = None
        self._generation = 0
        self._in_flight = False
        self._loop_task: Optional[asyncio.Task] = None
        self._deadline_handle: Optional[asyncio.TimerHandle] = None
        self._pending: set[asyncio.Task] = set()
        self._stopped = asyncio.Event()

        self.last_error: Optional[str] = None
        self.consecutive_failures = 0
        self.success_count = 0

    @property
    def config(self) -> Optional[PollingConfig]:
        return self._config

    @property
    def status(self) -> SessionStatus:
        self._enforce_deadline()
        return self.session.status

    @property
    def is_active(self) -> bool:
        self._enforce_deadline()
        return self._running

    @property
    def _running(self) -> bool:
        return self.session.status is SessionStatus.ACTIVE

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def elapsed(self) -> float:
        """Seconds since the current session started."""
        return self.session.elapsed(self._clock())

    def start(self, config: Optional[PollingConfig] = None) -> None:
        """
        Start polling, or update the config in place if already active.

        Must be called from within a running event loop.

        Raises:
            ValidationError: If the config is out of range
        """
        config = config or self._config or PollingConfig.from_settings()
        validate_polling_config(config, self._min_interval)

        if self.is_active:
            self._config = config
            if not config.enabled:
                self.stop(reason="disabled")
                return
            self._arm_deadline()
            logger.debug("Polling already active, config updated", poller=self.name)
            return

        if not config.enabled:
            logger.debug("Polling disabled, not starting", poller=self.name)
            return

        self._config = config
        self._generation += 1
        self.session = PollingSession(status=SessionStatus.ACTIVE, started_at=self._clock())
        self.last_error = None
        self.consecutive_failures = 0
        self.retry_policy.reset()
        self._stopped.clear()
        self._loop_task = asyncio.create_task(self._run(self._generation))
        self._arm_deadline()

        logger.info(
            "Polling started",
            poller=self.name,
            interval=config.interval,
            auto_stop=config.auto_stop,
            max_duration=config.max_duration,
        )

    def stop(self, reason: str = "manual") -> None:
        """
        Stop future ticks.

        An already dispatched fetch is not cancelled; its response is
        discarded when it lands because the generation has moved on.
        """
        if not self._running:
            return

        elapsed = self.elapsed
        self._generation += 1
        self._cancel_deadline()
        self.session.status = SessionStatus.STOPPED
        self.session.stop_reason = reason

        task, self._loop_task = self._loop_task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

        self.tracker.mark_stopped(reason)
        self._stopped.set()
        logger.info("Polling stopped", poller=self.name, reason=reason, elapsed=round(elapsed, 3))

    def reconfigure(self, **changes: Any) -> PollingConfig:
        """
        Update part of the config. Takes effect on the next scheduled tick.

        ``enabled=False`` stops an active scheduler.

        Raises:
            ValidationError: On unknown fields or out-of-range values
        """
        unknown = set(changes) - set(PollingConfig.model_fields)
        if unknown:
            name = sorted(unknown)[0]
            raise ValidationError(f"Unknown polling option: {name}", field=name)

        base = self._config or PollingConfig.from_settings()
        try:
            config = PollingConfig(**{**base.model_dump(), **changes})
        except SchemaValidationError as e:
            raise ValidationError(f"Invalid polling config: {e.errors()[0]['msg']}") from e
        validate_polling_config(config, self._min_interval)

        self._config = config
        logger.debug("Polling reconfigured", poller=self.name, changes=changes)

        if self.is_active:
            if not config.enabled:
                self.stop(reason="disabled")
            else:
                self._arm_deadline()
        return config

    async def tick_now(self) -> TickOutcome:
        """Manual refresh. Shares the in-flight guard with timer ticks."""
        return await self._tick(self._generation)

    async def wait_stopped(self) -> None:
        """Wait until the current session stops for any reason."""
        await self._stopped.wait()

    async def drain(self) -> None:
        """Wait for dispatched fetches to settle (their results may be discarded)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    @asynccontextmanager
    async def running(self, config: Optional[PollingConfig] = None) -> AsyncIterator["PollingScheduler[T]"]:
        """Scoped polling session; stops on every exit path."""
        self.start(config)
        try:
            yield self
        finally:
            self.stop(reason="teardown")

    def _deadline_reached(self) -> bool:
        config = self._config
        if config is None or not config.auto_stop:
            return False
        return self.elapsed >= config.max_duration_seconds

    def _remaining(self) -> Optional[float]:
        config = self._config
        if config is None or not config.auto_stop:
            return None
        return max(0.0, config.max_duration_seconds - self.elapsed)

    def _enforce_deadline(self) -> None:
        if self._running and self._deadline_reached():
            self.stop(reason="max_duration")

    def _arm_deadline(self) -> None:
        self._cancel_deadline()
        remaining = self._remaining()
        if remaining is None or not self._running:
            return
        loop = asyncio.get_running_loop()
        self._deadline_handle = loop.call_later(remaining, self._on_deadline, self._generation)

    def _cancel_deadline(self) -> None:
        if self._deadline_handle is not None:
            self._deadline_handle.cancel()
            self._deadline_handle = None

    def _on_deadline(self, generation: int) -> None:
        self._deadline_handle = None
        if generation != self._generation or not self._running:
            return
        # The injected clock is authoritative; re-arm if it has not caught up
        if self._deadline_reached():
            self.stop(reason="max_duration")
        else:
            self._arm_deadline()

    async def _run(self, generation: int) -> None:
        while self.is_active and generation == self._generation:
            started = self._clock()

            # Shielded so stop() cancelling this loop leaves the fetch running
            tick = asyncio.ensure_future(self._tick(generation))
            self._pending.add(tick)
            tick.add_done_callback(self._pending.discard)
            await asyncio.shield(tick)

            if not self.is_active or generation != self._generation:
                break

            delay = self.retry_policy.next_delay(self._config.interval, self.consecutive_failures)
            delay = max(0.0, delay - (self._clock() - started))
            remaining = self._remaining()
            if remaining is not None:
                delay = min(delay, remaining)
            await self._sleep(delay)

    async def _tick(self, generation: int) -> TickOutcome:
        if not self.is_active or generation != self._generation:
            return TickOutcome.STOPPED

        if self._in_flight:
            logger.debug("Tick skipped, fetch still in flight", poller=self.name)
            return TickOutcome.SKIPPED

        self._in_flight = True
        try:
            result = await asyncio.wait_for(self._fetch(), timeout=self._in_flight_timeout)
        except asyncio.TimeoutError:
            error = NetworkError(f"Fetch timed out after {self._in_flight_timeout}s")
            return self._record_failure(generation, error)
        except SyncError as e:
            return self._record_failure(generation, e)
        except Exception as e:
            logger.exception("Unexpected polling fetch error", poller=self.name)
            return self._record_failure(generation, e)
        finally:
            self._in_flight = False

        # A response landing after max_duration is never applied
        self._enforce_deadline()
        if generation != self._generation:
            logger.debug("Discarding response from previous polling generation", poller=self.name)
            return TickOutcome.DISCARDED

        if self._on_success is not None:
            try:
                self._on_success(result)
            except SyncError as e:
                return self._record_failure(generation, e)

        self.last_error = None
        self.consecutive_failures = 0
        self.success_count += 1
        self.retry_policy.record_success()
        self.tracker.mark_connected()
        return TickOutcome.SUCCESS

    def _record_failure(self, generation: int, error: Exception) -> TickOutcome:
        self._enforce_deadline()
        if generation != self._generation:
            return TickOutcome.DISCARDED

        self.last_error = str(error)
        self.consecutive_failures += 1
        self.retry_policy.record_failure()
        logger.warning(
            "Polling tick failed",
            poller=self.name,
            error=self.last_error,
            consecutive_failures=self.consecutive_failures,
        )
        return TickOutcome.FAILURE


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
