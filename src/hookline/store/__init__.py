"""Audit-log persistence for events, rendered documents and executions.

The in-memory store is used when no database is configured; the
PostgreSQL store uses an asyncpg connection pool.
"""

from .base import EventStore, PersistenceError
from .memory import InMemoryEventStore
from .models import (
    EventRecord,
    EventSummary,
    ExecutionRecord,
    ExecutionStatus,
    RenderedDocument,
)
from .postgres import PostgresEventStore


def create_event_store(database_url: str) -> EventStore:
    """Select the store implementation for a database URL.

    Args:
        database_url: PostgreSQL URL, or empty for the in-memory store.
    """
    if database_url:
        return PostgresEventStore(database_url)
    return InMemoryEventStore()


__all__ = [
    "EventRecord",
    "EventStore",
    "EventSummary",
    "ExecutionRecord",
    "ExecutionStatus",
    "InMemoryEventStore",
    "PersistenceError",
    "PostgresEventStore",
    "RenderedDocument",
    "create_event_store",
]
