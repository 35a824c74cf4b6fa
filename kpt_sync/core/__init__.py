"""
Core module containing configuration, logging and shared exceptions.
"""
from kpt_sync.core.config import Settings, get_settings, settings
from kpt_sync.core.exceptions import (
    NetworkError,
    ReconciliationConflict,
    SyncError,
    ValidationError,
)

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "SyncError",
    "NetworkError",
    "ValidationError",
    "ReconciliationConflict",
]
