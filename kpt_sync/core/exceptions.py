"""
Sync core exceptions.

None of these are fatal. Network and validation errors are turned into
per-consumer error strings at the scheduler, store and coordinator
boundaries; reconciliation conflicts are recorded rather than raised.
"""
from typing import Any, Optional


class SyncError(Exception):
    """Base exception for the sync core."""
    pass


class NetworkError(SyncError):
    """A request failed or returned a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(SyncError):
    """Malformed filter or out-of-range config, rejected before dispatch."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ReconciliationConflict(SyncError):
    """An authoritative response disagrees with optimistic local state."""

    def __init__(self, field: str, local: Any, authoritative: Any):
        super().__init__(
            f"{field}: local value {local!r} replaced by authoritative {authoritative!r}"
        )
        self.field = field
        self.local = local
        self.authoritative = authoritative
