"""In-memory event store.

Used when no database URL is configured, and as the store double in
tests. Mutations never await, so each append is atomic on the event loop
and concurrent requests need no lock. Contents are lost on restart.
"""

import itertools
import logging
from typing import Dict, List, Optional

from ..webhook.models import IncomingWebhook
from .base import EventStore, PersistenceError
from .models import (
    EventRecord,
    EventSummary,
    ExecutionRecord,
    ExecutionStatus,
    RenderedDocument,
    utc_now,
)

logger = logging.getLogger(__name__)


class InMemoryEventStore(EventStore):
    """Dictionary-backed implementation of EventStore."""

    def __init__(self) -> None:
        self._events: Dict[int, EventRecord] = {}
        self._documents: Dict[int, RenderedDocument] = {}
        self._executions: Dict[int, ExecutionRecord] = {}
        self._event_ids = itertools.count(1)
        self._document_ids = itertools.count(1)
        self._execution_ids = itertools.count(1)
        self._open = False

    async def open(self) -> None:
        self._open = True
        logger.info("In-memory event store opened")

    async def close(self) -> None:
        self._open = False

    def _require_open(self) -> None:
        if not self._open:
            raise PersistenceError("Event store not open. Call open() first.")

    async def add_event(self, webhook: IncomingWebhook) -> EventRecord:
        self._require_open()
        record = EventRecord(
            id=next(self._event_ids),
            received_at=utc_now(),
            event_type=webhook.event_type,
            action=webhook.action,
            delivery_id=webhook.delivery_id,
            signature=webhook.signature,
            payload=webhook.payload,
            sender_login=webhook.sender_login,
            sender_id=webhook.sender_id,
            repository=webhook.repository,
            verified=webhook.verified,
        )
        self._events[record.id] = record
        return record

    async def get_event(self, event_id: int) -> Optional[EventRecord]:
        self._require_open()
        return self._events.get(event_id)

    async def list_events(
        self, limit: int = 50, offset: int = 0
    ) -> List[EventSummary]:
        self._require_open()
        ordered = sorted(
            self._events.values(),
            key=lambda e: (e.received_at, e.id),
            reverse=True,
        )
        return [e.summary() for e in ordered[offset:offset + limit]]

    async def delete_event(self, event_id: int) -> bool:
        self._require_open()
        return self._events.pop(event_id, None) is not None

    async def add_document(
        self,
        event_id: int,
        repository: str,
        event_type: str,
        template: str,
        content: str,
    ) -> RenderedDocument:
        self._require_open()
        document = RenderedDocument(
            id=next(self._document_ids),
            event_id=event_id,
            repository=repository,
            event_type=event_type,
            template=template,
            content=content,
        )
        self._documents[document.id] = document
        return document

    async def get_document(self, document_id: int) -> Optional[RenderedDocument]:
        self._require_open()
        return self._documents.get(document_id)

    async def list_documents(
        self,
        event_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[RenderedDocument]:
        self._require_open()
        documents = [
            d for d in self._documents.values()
            if event_id is None or d.event_id == event_id
        ]
        documents.sort(key=lambda d: (d.created_at, d.id), reverse=True)
        return documents[offset:offset + limit]

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
        self._require_open()
        record = ExecutionRecord(
            id=next(self._execution_ids),
            document_id=document_id,
            status=status,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration_ms=duration_ms,
            error_message=error_message,
        )
        self._executions[record.id] = record
        return record

    async def latest_execution(
        self, document_id: int
    ) -> Optional[ExecutionRecord]:
        self._require_open()
        candidates = [
            r for r in self._executions.values() if r.document_id == document_id
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: (r.created_at, r.id))

    async def health_check(self) -> bool:
        return self._open
