"""Persistence: key-value stores, typed session state, audit log."""

from placemini.persistence.event_log import EventKind, EventLog, EventRecord
from placemini.persistence.kv_store import KeyValueStore, MemoryStore, SqliteStore
from placemini.persistence.state_store import CanvasStateStore

__all__ = [
    "CanvasStateStore",
    "EventKind",
    "EventLog",
    "EventRecord",
    "KeyValueStore",
    "MemoryStore",
    "SqliteStore",
]
