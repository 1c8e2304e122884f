"""PostgreSQL event store.

This module implements the EventStore interface using asyncpg for async
PostgreSQL access. It provides:
- Connection pooling, so concurrent requests append without serializing
- JSONB storage of webhook payloads
- Newest-first paginated listing

The store expects the schema from migrations/001_event_store.sql to be
applied before use.
"""

import json
import logging
from datetime import timezone
from typing import Any, List, Optional

import asyncpg

from ..webhook.models import IncomingWebhook
from .base import EventStore, PersistenceError
from .models import (
    EventRecord,
    EventSummary,
    ExecutionRecord,
    ExecutionStatus,
    RenderedDocument,
)

logger = logging.getLogger(__name__)

_EVENT_COLUMNS = """
    id, received_at, event_type, action, delivery_id, signature,
    payload, sender_login, sender_id, repository, verified
"""

_SUMMARY_COLUMNS = """
    id, received_at, event_type, action, delivery_id,
    sender_login, repository, verified
"""

_DOCUMENT_COLUMNS = """
    id, event_id, repository, event_type, template, content, created_at
"""

_EXECUTION_COLUMNS = """
    id, document_id, status, stdout, stderr, exit_code,
    duration_ms, error_message, created_at
"""


def _utc(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PostgresEventStore(EventStore):
    """PostgreSQL implementation of the EventStore interface.

    Attributes:
        connection_string: PostgreSQL connection URL.
        min_pool_size: Minimum connections in pool.
        max_pool_size: Maximum connections in pool.

    Example:
        >>> async with PostgresEventStore("postgresql://...") as store:
        ...     events = await store.list_events(limit=10)
    """

    def __init__(
        self,
        connection_string: str,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
    ):
        self.connection_string = connection_string
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool, raising if not opened.

        Raises:
            PersistenceError: If the pool is not initialized.
        """
        if self._pool is None:
            raise PersistenceError(
                "Database pool not initialized. Call open() first."
            )
        return self._pool

    async def open(self) -> None:
        """Initialize the connection pool.

        Raises:
            PersistenceError: If connection fails.
        """
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            logger.info(
                "Connecting to PostgreSQL",
                extra={
                    "min_pool_size": self.min_pool_size,
                    "max_pool_size": self.max_pool_size,
                },
            )
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            logger.info("PostgreSQL connection pool established")
        except Exception as e:
            logger.error(
                "Failed to connect to PostgreSQL",
                extra={"error": str(e)},
            )
            raise PersistenceError(
                f"Failed to connect to PostgreSQL: {e}",
                original_error=e,
            ) from e

    async def close(self) -> None:
        if self._pool is not None:
            logger.info("Closing PostgreSQL connection pool")
            await self._pool.close()
            self._pool = None

    async def _fetchrow(self, operation: str, query: str, *args: Any):
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(
                "Failed to %s", operation, extra={"error": str(e)}
            )
            raise PersistenceError(
                f"Failed to {operation}: {e}", original_error=e
            ) from e

    async def _fetch(self, operation: str, query: str, *args: Any):
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(
                "Failed to %s", operation, extra={"error": str(e)}
            )
            raise PersistenceError(
                f"Failed to {operation}: {e}", original_error=e
            ) from e

    async def add_event(self, webhook: IncomingWebhook) -> EventRecord:
        row = await self._fetchrow(
            "save event",
            f"""
            INSERT INTO events (
                event_type, action, delivery_id, signature, payload,
                sender_login, sender_id, repository, verified
            ) VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, $8, $9)
            RETURNING {_EVENT_COLUMNS}
            """,
            webhook.event_type,
            webhook.action,
            webhook.delivery_id,
            webhook.signature,
            json.dumps(webhook.payload),
            webhook.sender_login,
            webhook.sender_id,
            webhook.repository,
            webhook.verified,
        )
        logger.info(
            "Saved event",
            extra={"event_id": row["id"], "event_type": webhook.event_type},
        )
        return self._event_from_row(row)

    async def get_event(self, event_id: int) -> Optional[EventRecord]:
        row = await self._fetchrow(
            "get event",
            f"SELECT {_EVENT_COLUMNS} FROM events WHERE id = $1",
            event_id,
        )
        return self._event_from_row(row) if row is not None else None

    async def list_events(
        self, limit: int = 50, offset: int = 0
    ) -> List[EventSummary]:
        rows = await self._fetch(
            "list events",
            f"""
            SELECT {_SUMMARY_COLUMNS} FROM events
            ORDER BY received_at DESC, id DESC
            LIMIT $1 OFFSET $2
            """,
            limit,
            offset,
        )
        return [
            EventSummary(**{**dict(r), "received_at": _utc(r["received_at"])})
            for r in rows
        ]

    async def delete_event(self, event_id: int) -> bool:
        row = await self._fetchrow(
            "delete event",
            "DELETE FROM events WHERE id = $1 RETURNING id",
            event_id,
        )
        if row is None:
            return False
        logger.info("Deleted event", extra={"event_id": event_id})
        return True

    async def add_document(
        self,
        event_id: int,
        repository: str,
        event_type: str,
        template: str,
        content: str,
    ) -> RenderedDocument:
        row = await self._fetchrow(
            "save rendered document",
            f"""
            INSERT INTO rendered_documents (
                event_id, repository, event_type, template, content
            ) VALUES ($1, $2, $3, $4, $5)
            RETURNING {_DOCUMENT_COLUMNS}
            """,
            event_id,
            repository,
            event_type,
            template,
            content,
        )
        return self._document_from_row(row)

    async def get_document(self, document_id: int) -> Optional[RenderedDocument]:
        row = await self._fetchrow(
            "get rendered document",
            f"SELECT {_DOCUMENT_COLUMNS} FROM rendered_documents WHERE id = $1",
            document_id,
        )
        return self._document_from_row(row) if row is not None else None

    async def list_documents(
        self,
        event_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[RenderedDocument]:
        rows = await self._fetch(
            "list rendered documents",
            f"""
            SELECT {_DOCUMENT_COLUMNS} FROM rendered_documents
            WHERE $1::bigint IS NULL OR event_id = $1
            ORDER BY created_at DESC, id DESC
            LIMIT $2 OFFSET $3
            """,
            event_id,
            limit,
            offset,
        )
        return [self._document_from_row(r) for r in rows]

    async def add_execution(
        self,
        document_id: int,
        status: ExecutionStatus,
        stdout: str = "",
        stderr: str = "",
        exit_code: Optional[int] = None,
        duration_ms: int = 0,
        error_message: Optional[str] = None,
    ) -> ExecutionRecord:
        row = await self._fetchrow(
            "save execution record",
            f"""
            INSERT INTO execution_records (
                document_id, status, stdout, stderr, exit_code,
                duration_ms, error_message
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING {_EXECUTION_COLUMNS}
            """,
            document_id,
            status.value,
            stdout,
            stderr,
            exit_code,
            duration_ms,
            error_message,
        )
        return self._execution_from_row(row)

    async def latest_execution(
        self, document_id: int
    ) -> Optional[ExecutionRecord]:
        row = await self._fetchrow(
            "get latest execution record",
            f"""
            SELECT {_EXECUTION_COLUMNS} FROM execution_records
            WHERE document_id = $1
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            document_id,
        )
        return self._execution_from_row(row) if row is not None else None

    async def health_check(self) -> bool:
        """Check if the database connection is healthy."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            logger.warning(
                "Database health check failed",
                extra={"error": str(e)},
            )
            return False

    def _event_from_row(self, row) -> EventRecord:
        payload = row["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        return EventRecord(
            id=row["id"],
            received_at=_utc(row["received_at"]),
            event_type=row["event_type"],
            action=row["action"],
            delivery_id=row["delivery_id"],
            signature=row["signature"],
            payload=payload or {},
            sender_login=row["sender_login"],
            sender_id=row["sender_id"],
            repository=row["repository"],
            verified=row["verified"],
        )

    def _document_from_row(self, row) -> RenderedDocument:
        return RenderedDocument(
            id=row["id"],
            event_id=row["event_id"],
            repository=row["repository"],
            event_type=row["event_type"],
            template=row["template"],
            content=row["content"],
            created_at=_utc(row["created_at"]),
        )

    def _execution_from_row(self, row) -> ExecutionRecord:
        return ExecutionRecord(
            id=row["id"],
            document_id=row["document_id"],
            status=ExecutionStatus(row["status"]),
            stdout=row["stdout"],
            stderr=row["stderr"],
            exit_code=row["exit_code"],
            duration_ms=row["duration_ms"],
            error_message=row["error_message"],
            created_at=_utc(row["created_at"]),
        )
