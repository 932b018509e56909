"""Persistence — key-value collection stores, durable writers, event log."""

from connecto.persistence.event_log import EventKind, EventLog, EventRecord
from connecto.persistence.store import InMemoryStore, JsonFileStore, KeyValueStore
from connecto.persistence.writer import CollectionWriter, PersistenceQueue

__all__ = [
    "CollectionWriter",
    "EventKind",
    "EventLog",
    "EventRecord",
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "PersistenceQueue",
]
