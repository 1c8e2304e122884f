"""Event store interface.

The event store is the only shared mutable resource of the service. It
holds the audit log of events, rendered documents and execution records,
and must accept concurrent appends without a global lock.

Implementations have an explicit lifecycle: open() before use, close()
on shutdown. Both are also available as an async context manager.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from ..webhook.models import IncomingWebhook
from .models import (
    EventRecord,
    EventSummary,
    ExecutionRecord,
    ExecutionStatus,
    RenderedDocument,
)


class PersistenceError(Exception):
    """Raised when a store operation fails.

    This exception wraps underlying storage errors to provide a
    consistent interface for error handling.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


class EventStore(ABC):
    """Abstract audit-log store for events, documents and executions."""

    async def open(self) -> None:
        """Acquire store resources. Must be called before any operation."""

    async def close(self) -> None:
        """Release store resources."""

    async def __aenter__(self) -> "EventStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @abstractmethod
    async def add_event(self, webhook: IncomingWebhook) -> EventRecord:
        """Persist a delivery and return the stored record."""

    @abstractmethod
    async def get_event(self, event_id: int) -> Optional[EventRecord]:
        """Return an event by id, or None."""

    @abstractmethod
    async def list_events(
        self, limit: int = 50, offset: int = 0
    ) -> List[EventSummary]:
        """Return event summaries, newest first."""

    @abstractmethod
    async def delete_event(self, event_id: int) -> bool:
        """Delete an event. Its documents and executions are kept.

        Returns:
            True if an event was deleted, False if not found.
        """

    @abstractmethod
    async def add_document(
        self,
        event_id: int,
        repository: str,
        event_type: str,
        template: str,
        content: str,
    ) -> RenderedDocument:
        """Persist a rendered document and return the stored record."""

    @abstractmethod
    async def get_document(self, document_id: int) -> Optional[RenderedDocument]:
        """Return a rendered document by id, or None."""

    @abstractmethod
    async def list_documents(
        self,
        event_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[RenderedDocument]:
        """Return rendered documents, newest first, optionally for one event."""

    @abstractmethod
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
        """Persist an execution record and return the stored record."""

    @abstractmethod
    async def latest_execution(
        self, document_id: int
    ) -> Optional[ExecutionRecord]:
        """Return the most recent execution for a document, or None."""

    async def health_check(self) -> bool:
        """Check whether the store is usable."""
        return True
