"""Audit-log record models.

This module defines the three record types persisted by the event store:
- EventRecord: one received webhook delivery
- RenderedDocument: a template rendered against an event
- ExecutionRecord: one agent invocation against a rendered document

Records are append-only: they are created once and never updated.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    """Outcome category of an agent invocation.

    Attributes:
        COMPLETED: The process ran and exited; exit_code is its real code.
        TIMED_OUT: The process exceeded the timeout and was killed.
        LAUNCH_FAILED: The process could not be started; exit_code is None.
        ERRORED: The run failed after starting for a reason other than the
            process exit, e.g. stdin could not be delivered; exit_code is None.
    """

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    LAUNCH_FAILED = "launch_failed"
    ERRORED = "errored"


class EventSummary(BaseModel):
    """List projection of an EventRecord, without payload or signature."""

    id: int
    received_at: datetime
    event_type: str
    action: Optional[str] = None
    delivery_id: Optional[str] = None
    sender_login: str
    repository: str
    verified: bool


class EventRecord(EventSummary):
    """A persisted webhook delivery.

    Attributes:
        id: Store-assigned identifier.
        received_at: When the delivery was persisted (UTC).
        event_type: X-GitHub-Event header value.
        action: Payload action, if any.
        delivery_id: X-GitHub-Delivery header value (advisory).
        signature: Raw X-Hub-Signature-256 header value.
        payload: The normalized payload.
        sender_login: Sender login or "unknown".
        sender_id: Sender numeric id, if present.
        repository: Repository/organization name or "unknown".
        verified: Signature verification outcome.
    """

    signature: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    sender_id: Optional[int] = None

    def summary(self) -> EventSummary:
        return EventSummary(**self.model_dump(include=set(EventSummary.model_fields)))


class RenderedDocument(BaseModel):
    """A template rendered against an event's payload.

    Attributes:
        id: Store-assigned identifier.
        event_id: The owning event. May dangle after the event is deleted.
        repository: Repository the template was resolved for.
        event_type: Event type the template was resolved for.
        template: Template source text at render time.
        content: Rendered instruction document.
        created_at: When the document was persisted (UTC).
    """

    id: int
    event_id: int
    repository: str
    event_type: str
    template: str
    content: str
    created_at: datetime = Field(default_factory=utc_now)


class ExecutionRecord(BaseModel):
    """Captured result of one agent invocation.

    Attributes:
        id: Store-assigned identifier.
        document_id: The rendered document that was executed.
        status: Outcome category.
        stdout: Captured standard output.
        stderr: Captured standard error.
        exit_code: Process exit code; None when the process never started.
        duration_ms: Wall-clock duration in milliseconds.
        error_message: Error description, for LAUNCH_FAILED and ERRORED.
        created_at: When the record was persisted (UTC).
    """

    id: int
    document_id: int
    status: ExecutionStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    duration_ms: int = Field(default=0, ge=0)
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED and self.exit_code == 0
