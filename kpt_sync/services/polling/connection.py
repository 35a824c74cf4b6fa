"""
Connection state exposed to callers of a polling scheduler.
"""
from enum import Enum
from typing import Callable, Optional

import structlog

logger = structlog.get_logger()


class ConnectionState(str, Enum):
    STOPPED = "stopped"
    CONNECTED = "connected"


StateListener = Callable[[ConnectionState, Optional[str]], None]


class ConnectionStateTracker:
    """
    Two-state status: ``stopped`` (initial) and ``connected``.

    The scheduler flips this to connected after the first successful tick
    following start(), and back to stopped on manual stop, max duration, or
    scoped teardown.
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._state = ConnectionState.STOPPED
        self._listeners: list[StateListener] = []

    @property
    def status(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a transition listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def mark_connected(self):
        self._transition(ConnectionState.CONNECTED, None)

    def mark_stopped(self, reason: str = "manual"):
        self._transition(ConnectionState.STOPPED, reason)

    def _transition(self, state: ConnectionState, reason: Optional[str]):
        if state is self._state:
            return
        self._state = state
        logger.info("Connection state changed", tracker=self.name, state=state.value, reason=reason)
        for listener in list(self._listeners):
            try:
                listener(state, reason)
            except Exception as e:
                logger.error(
                    "Connection state listener failed",
                    tracker=self.name,
                    error=str(e),
                )
