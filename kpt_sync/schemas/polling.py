"""
Polling configuration and session schemas.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from kpt_sync.core.config import settings


class PollingConfig(BaseModel):
    """Configuration for a polling scheduler."""

    enabled: bool = True
    interval: float = 30.0  # seconds
    auto_stop: bool = True
    max_duration: float = 60.0  # minutes

    @classmethod
    def from_settings(cls) -> "PollingConfig":
        """Build a config from the environment defaults."""
        return cls(
            enabled=True,
            interval=settings.poll_interval,
            auto_stop=settings.poll_auto_stop,
            max_duration=settings.poll_max_duration,
        )

    @property
    def max_duration_seconds(self) -> float:
        return self.max_duration * 60


class SessionStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    STOPPED = "stopped"


@dataclass
class PollingSession:
    """Lifetime record of one start()..stop() span."""

    status: SessionStatus = SessionStatus.IDLE
    started_at: Optional[float] = None
    stop_reason: Optional[str] = None

    def elapsed(self, now: float) -> float:
        """Seconds since start, 0 if never started."""
        if self.started_at is None:
            return 0.0
        return max(0.0, now - self.started_at)
