"""
Per-view sync engine.
"""
from kpt_sync.services.sync.engine import SyncEngine

__all__ = ["SyncEngine"]
