"""Persistence backends."""
from .sqlite_store import SqliteObservationStore

__all__ = ["SqliteObservationStore"]
