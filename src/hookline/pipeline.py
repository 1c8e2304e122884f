"""Ingestion pipeline connecting verification, storage, templates and dispatch.

Drives one webhook delivery through:
received → verified → persisted → [template resolved → rendered →
[agent triggered]]

Persisting the event is the only mandatory step; its failure propagates
as PersistenceError. Every later step is best-effort and is logged rather
than raised, so a missing template, a broken template or a failing agent
never changes the response sent to the webhook sender.

Source:
- webhook/handler.py (WebhookHandler)
- templates/store.py (TemplateStore)
- templates/renderer.py (TemplateRenderer)
- dispatch.py (DispatchPolicy)
- runner/executor.py (AgentDispatcher)
- store/base.py (EventStore)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .dispatch import DispatchPolicy
from .metrics import IngestionMetrics
from .runner.executor import AgentDispatcher
from .store.base import EventStore
from .store.models import EventRecord, RenderedDocument
from .templates.renderer import TemplateRenderer
from .templates.store import TemplateStore
from .webhook.handler import WebhookHandler
from .webhook.models import IncomingWebhook

logger = logging.getLogger(__name__)


class IngestionStage(str, Enum):
    """Furthest stage a persisted delivery reached in the pipeline.

    Every IngestionResult carries a persisted event, so stages start at
    PERSISTED. AGENT_TRIGGERED is final here: the agent runs in the
    background and its outcome is recorded as an ExecutionRecord.
    """

    PERSISTED = "persisted"
    TEMPLATE_RESOLVED = "template_resolved"
    RENDERED = "rendered"
    AGENT_TRIGGERED = "agent_triggered"


@dataclass
class IngestionResult:
    """Outcome of ingesting one delivery.

    Attributes:
        webhook: The normalized delivery.
        event: The persisted event record.
        document: The rendered document, if a template was found.
        dispatched: Whether an agent execution was scheduled.
        stage: Furthest stage reached.
        rejected: True when signature enforcement stopped processing.
    """

    webhook: IncomingWebhook
    event: EventRecord
    document: Optional[RenderedDocument] = None
    dispatched: bool = False
    stage: IngestionStage = IngestionStage.PERSISTED
    rejected: bool = False

    def acknowledgement(self) -> Dict[str, Any]:
        """Response body returned to the webhook sender."""
        return {
            "received": True,
            "event": self.webhook.event_type,
            "action": self.webhook.action,
            "repository": self.webhook.repository,
            "verified": self.webhook.verified,
        }


class IngestionPipeline:
    """Orchestrates webhook ingestion.

    Accepts all dependencies via constructor injection.

    Attributes:
        handler: Verifies and normalizes deliveries.
        store: Audit-log store.
        templates: Template lookup.
        renderer: Template renderer.
        policy: Auto-dispatch policy.
        dispatcher: Background agent dispatcher.
        enforce_signature: Skip processing of unverified deliveries.
        metrics: Optional metrics sink.
    """

    def __init__(
        self,
        handler: WebhookHandler,
        store: EventStore,
        templates: TemplateStore,
        renderer: TemplateRenderer,
        policy: DispatchPolicy,
        dispatcher: AgentDispatcher,
        enforce_signature: bool = False,
        metrics: Optional[IngestionMetrics] = None,
    ):
        self.handler = handler
        self.store = store
        self.templates = templates
        self.renderer = renderer
        self.policy = policy
        self.dispatcher = dispatcher
        self.enforce_signature = enforce_signature
        self.metrics = metrics

    async def ingest(
        self,
        headers: Mapping[str, str],
        raw_body: bytes,
        content_type: Optional[str] = None,
    ) -> IngestionResult:
        """Ingest one webhook delivery.

        Args:
            headers: Request headers.
            raw_body: Exact request body bytes.
            content_type: Request Content-Type, if known.

        Returns:
            IngestionResult describing what happened.

        Raises:
            PersistenceError: If the event cannot be stored.
        """
        webhook = self.handler.parse(headers, raw_body, content_type)

        event = await self.store.add_event(webhook)
        logger.info(
            "Logged webhook: %s from %s (%s) - ID: %s",
            webhook.event_type,
            webhook.sender_login,
            webhook.repository,
            webhook.delivery_id,
            extra={"event_id": event.id, "verified": webhook.verified},
        )
        if self.metrics is not None:
            self.metrics.record_event_received(
                webhook.event_type, webhook.verified
            )

        result = IngestionResult(webhook=webhook, event=event)

        if self.enforce_signature and not webhook.verified:
            result.rejected = True
            return result

        if not webhook.has_known_repository:
            return result

        try:
            await self._process_template(result)
        except Exception:
            logger.exception(
                "Failed to process prompt template",
                extra={
                    "event_id": event.id,
                    "repository": webhook.repository,
                    "event_type": webhook.event_type,
                },
            )

        return result

    async def _process_template(self, result: IngestionResult) -> None:
        """Resolve, render and store a document, then maybe dispatch."""
        webhook = result.webhook

        template = self.templates.resolve(webhook.repository, webhook.event_type)
        if template is None:
            return
        result.stage = IngestionStage.TEMPLATE_RESOLVED

        content = self.renderer.render(template, webhook.payload)
        document = await self.store.add_document(
            event_id=result.event.id,
            repository=webhook.repository,
            event_type=webhook.event_type,
            template=template,
            content=content,
        )
        result.document = document
        result.stage = IngestionStage.RENDERED
        if self.metrics is not None:
            self.metrics.record_document_rendered(webhook.event_type)

        logger.info(
            "Parsed prompt stored for %s/%s - Document ID: %d",
            webhook.repository,
            webhook.event_type,
            document.id,
        )

        if not self.policy.should_dispatch(webhook.payload):
            return

        logger.info(
            "Auto-executing agent for %s/%s",
            webhook.repository,
            webhook.event_type,
        )
        self.dispatcher.submit(document.id)
        result.dispatched = True
        result.stage = IngestionStage.AGENT_TRIGGERED
