"""FastAPI application entry point for hookline.

This module provides the HTTP surface of the service: the webhook
ingress endpoint, read/delete access to the audit log, template
management, and manual agent execution. Dependencies are built in the
application lifespan and can be injected through create_app() for tests.
"""

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from .config import HooklineSettings, get_settings
from .dispatch import DispatchPolicy
from .metrics import IngestionMetrics
from .pipeline import IngestionPipeline
from .runner.agent import AgentRunner
from .runner.executor import AgentDispatcher, ExecutionService
from .store import EventStore, PersistenceError, create_event_store
from .store.models import ExecutionStatus
from .templates.renderer import TemplateRenderer
from .templates.store import InvalidTemplateKeyError, TemplateStore
from .webhook.handler import WebhookHandler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500

# Seconds to wait for background agent runs during shutdown
SHUTDOWN_DRAIN_SECONDS = 30.0

_default_metrics: Optional[IngestionMetrics] = None


@dataclass
class Services:
    """Wired dependencies shared by all request handlers."""

    settings: HooklineSettings
    store: EventStore
    templates: TemplateStore
    pipeline: IngestionPipeline
    execution_service: ExecutionService
    dispatcher: AgentDispatcher
    metrics: IngestionMetrics
    started_at: float


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: HooklineSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("hookline configuration:")
    logger.info(f"  Webhook Secret: {_redact_secret(settings.webhook_secret)}")
    logger.info(f"  Enforce Signature: {settings.enforce_signature}")
    database = (
        _redact_secret(settings.database_url) if settings.database_url
        else "(in-memory)"
    )
    logger.info(f"  Database URL: {database}")
    logger.info(f"  Templates Path: {settings.templates_path}")
    logger.info(f"  Auto Dispatch Enabled: {settings.auto_dispatch_enabled}")
    logger.info(f"  Dispatch Tag: {settings.dispatch_tag or '(any event)'}")
    logger.info(f"  Agent Timeout Seconds: {settings.agent_timeout_seconds}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")

    if not settings.verification_enabled:
        logger.warning(
            "No webhook secret configured: running in unauthenticated mode, "
            "every delivery is recorded as verified"
        )


def _get_default_metrics() -> IngestionMetrics:
    global _default_metrics
    if _default_metrics is None:
        _default_metrics = IngestionMetrics()
    return _default_metrics


def build_services(
    settings: HooklineSettings,
    store: Optional[EventStore] = None,
    runner: Optional[AgentRunner] = None,
    metrics: Optional[IngestionMetrics] = None,
) -> Services:
    """Wire all service dependencies from settings.

    Args:
        settings: Validated settings.
        store: Event store override; selected from database_url otherwise.
        runner: Agent runner override.
        metrics: Metrics override; the default-registry instance otherwise.

    Returns:
        Fully wired Services.
    """
    store = store or create_event_store(settings.database_url)
    runner = runner or AgentRunner(timeout_seconds=settings.agent_timeout_seconds)
    metrics = metrics or _get_default_metrics()

    templates = TemplateStore(Path(settings.templates_path))
    execution_service = ExecutionService(store, runner, metrics=metrics)
    dispatcher = AgentDispatcher(store, execution_service)
    pipeline = IngestionPipeline(
        handler=WebhookHandler(secret=settings.webhook_secret),
        store=store,
        templates=templates,
        renderer=TemplateRenderer(),
        policy=DispatchPolicy(
            auto_dispatch_enabled=settings.auto_dispatch_enabled,
            tag=settings.dispatch_tag,
        ),
        dispatcher=dispatcher,
        enforce_signature=settings.enforce_signature,
        metrics=metrics,
    )

    return Services(
        settings=settings,
        store=store,
        templates=templates,
        pipeline=pipeline,
        execution_service=execution_service,
        dispatcher=dispatcher,
        metrics=metrics,
        started_at=time.monotonic(),
    )


def _services(request: Request) -> Services:
    return request.app.state.services


def _page(limit: int, offset: int) -> tuple:
    return max(1, min(limit, MAX_PAGE_SIZE)), max(0, offset)


def _error(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


async def _template_text(request: Request) -> Optional[str]:
    """Read a template upload, or None when the body is not UTF-8."""
    try:
        return (await request.body()).decode("utf-8")
    except UnicodeDecodeError:
        return None


def create_app(
    settings: Optional[HooklineSettings] = None,
    store: Optional[EventStore] = None,
    runner: Optional[AgentRunner] = None,
    metrics: Optional[IngestionMetrics] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings override; read from the environment at startup
            otherwise.
        store: Event store override.
        runner: Agent runner override.
        metrics: Metrics override.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("hookline starting up...")

        cfg = settings or get_settings()
        logging.getLogger().setLevel(cfg.log_level)
        _log_configuration(cfg)

        services = build_services(cfg, store=store, runner=runner, metrics=metrics)
        await services.store.open()
        app.state.services = services

        logger.info("hookline started successfully")

        yield

        logger.info("hookline shutting down...")
        await services.dispatcher.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        await services.store.close()
        logger.info("hookline shutdown complete")

    app = FastAPI(
        title="hookline",
        description="GitHub webhook ingestion with templated agent dispatch",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(InvalidTemplateKeyError)
    async def invalid_template_key(request: Request, exc: InvalidTemplateKeyError):
        return _error(400, str(exc))

    @app.exception_handler(PersistenceError)
    async def persistence_failure(request: Request, exc: PersistenceError):
        logger.error("Persistence failure: %s", exc.message)
        return _error(500, exc.message)

    @app.get("/health")
    async def health(request: Request):
        """Liveness check endpoint."""
        services = _services(request)
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(time.monotonic() - services.started_at, 3),
        }

    @app.get("/ready")
    async def ready(request: Request):
        """Readiness check endpoint, verifying the event store."""
        healthy = await _services(request).store.health_check()
        body = {
            "status": "ready" if healthy else "not_ready",
            "dependencies": {"store": "healthy" if healthy else "unhealthy"},
        }
        return JSONResponse(status_code=200 if healthy else 503, content=body)

    @app.get("/metrics")
    async def prometheus_metrics(request: Request):
        return Response(
            content=_services(request).metrics.generate(),
            media_type=CONTENT_TYPE_LATEST,
        )

    @app.post("/webhook")
    async def receive_webhook(request: Request):
        """GitHub webhook receiver endpoint.

        Responds as soon as the event (and its rendered document, if any)
        is stored; agent execution continues in the background.
        """
        services = _services(request)
        raw_body = await request.body()

        try:
            result = await services.pipeline.ingest(
                request.headers,
                raw_body,
                request.headers.get("content-type"),
            )
        except PersistenceError as exc:
            logger.error(
                "Database error: %s",
                exc.message,
                extra={
                    "event_type": request.headers.get("x-github-event"),
                    "delivery_id": request.headers.get("x-github-delivery"),
                },
            )
            return _error(500, "Failed to log webhook")

        if result.rejected:
            return _error(401, "Signature verification failed")

        return result.acknowledgement()

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------
    @app.get("/api/events")
    async def list_events(
        request: Request, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ):
        limit, offset = _page(limit, offset)
        events = await _services(request).store.list_events(limit, offset)
        return [e.model_dump(mode="json") for e in events]

    @app.get("/api/events/{event_id}")
    async def get_event(request: Request, event_id: int):
        event = await _services(request).store.get_event(event_id)
        if event is None:
            return _error(404, "Webhook not found")
        return event.model_dump(mode="json")

    @app.get("/api/events/{event_id}/payload")
    async def get_event_payload(request: Request, event_id: int):
        event = await _services(request).store.get_event(event_id)
        if event is None:
            return _error(404, "Webhook not found")
        return JSONResponse(content=event.payload)

    @app.delete("/api/events/{event_id}")
    async def delete_event(request: Request, event_id: int):
        deleted = await _services(request).store.delete_event(event_id)
        if not deleted:
            return _error(404, "Webhook not found")
        return {"deleted": True, "id": event_id}

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------
    @app.get("/api/templates")
    async def list_templates(request: Request):
        return _services(request).templates.list_templates()

    @app.get("/api/templates/generic/{event_type}")
    async def get_generic_template(request: Request, event_type: str):
        text = _services(request).templates.get_generic(event_type)
        if text is None:
            return _error(404, "Prompt not found")
        return PlainTextResponse(text)

    @app.api_route("/api/templates/generic/{event_type}", methods=["PUT", "POST"])
    async def save_generic_template(request: Request, event_type: str):
        content = await _template_text(request)
        if content is None:
            return _error(400, "Template body must be UTF-8 text")
        _services(request).templates.save_generic(event_type, content)
        return {"success": True}

    @app.delete("/api/templates/generic/{event_type}")
    async def delete_generic_template(request: Request, event_type: str):
        if not _services(request).templates.delete_generic(event_type):
            return _error(404, "Prompt not found")
        return {"success": True}

    @app.get("/api/templates/repos/{owner}/{repo}/{event_type}")
    async def get_repository_template(
        request: Request, owner: str, repo: str, event_type: str
    ):
        text = _services(request).templates.get_repository(owner, repo, event_type)
        if text is None:
            return _error(404, "Prompt not found")
        return PlainTextResponse(text)

    @app.api_route(
        "/api/templates/repos/{owner}/{repo}/{event_type}",
        methods=["PUT", "POST"],
    )
    async def save_repository_template(
        request: Request, owner: str, repo: str, event_type: str
    ):
        content = await _template_text(request)
        if content is None:
            return _error(400, "Template body must be UTF-8 text")
        _services(request).templates.save_repository(
            owner, repo, event_type, content
        )
        return {"success": True}

    @app.delete("/api/templates/repos/{owner}/{repo}/{event_type}")
    async def delete_repository_template(
        request: Request, owner: str, repo: str, event_type: str
    ):
        templates = _services(request).templates
        if not templates.delete_repository(owner, repo, event_type):
            return _error(404, "Prompt not found")
        return {"success": True}

    # -------------------------------------------------------------------------
    # Rendered documents and executions
    # -------------------------------------------------------------------------
    @app.get("/api/documents")
    async def list_documents(
        request: Request,
        event_id: Optional[int] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ):
        limit, offset = _page(limit, offset)
        documents = await _services(request).store.list_documents(
            event_id=event_id, limit=limit, offset=offset
        )
        return [d.model_dump(mode="json") for d in documents]

    @app.get("/api/documents/{document_id}")
    async def get_document(request: Request, document_id: int):
        document = await _services(request).store.get_document(document_id)
        if document is None:
            return _error(404, "Parsed prompt not found")
        return document.model_dump(mode="json")

    @app.get("/api/documents/{document_id}/executions/latest")
    async def latest_execution(request: Request, document_id: int):
        record = await _services(request).store.latest_execution(document_id)
        if record is None:
            return _error(404, "No agent response found for this prompt")
        return record.model_dump(mode="json")

    @app.post("/api/documents/{document_id}/execute")
    async def execute_document(request: Request, document_id: int):
        """Run the agent on a document now and return its outcome inline."""
        services = _services(request)
        document = await services.store.get_document(document_id)
        if document is None:
            return _error(404, "Parsed prompt not found")

        record = await services.execution_service.execute(document)

        if record.status == ExecutionStatus.LAUNCH_FAILED:
            return _error(
                500,
                "Failed to launch agent",
                message=record.error_message,
            )
        if record.status == ExecutionStatus.ERRORED:
            return _error(
                500,
                "Agent execution failed",
                message=record.error_message,
                duration_ms=record.duration_ms,
            )
        if record.status == ExecutionStatus.TIMED_OUT:
            return _error(
                500,
                "Agent execution timed out",
                exit_code=record.exit_code,
                stderr=record.stderr,
                duration_ms=record.duration_ms,
            )
        if record.exit_code != 0:
            return _error(
                500,
                "Agent execution failed",
                exit_code=record.exit_code,
                stderr=record.stderr,
                duration_ms=record.duration_ms,
            )

        return {
            "success": True,
            "output": record.stdout,
            "duration_ms": record.duration_ms,
            "repository": document.repository,
            "event_type": document.event_type,
            "document_id": document.id,
            "event_id": document.event_id,
        }

    return app


app = create_app()


def run() -> None:
    """Run the service with uvicorn using host/port from settings."""
    import uvicorn

    cfg = get_settings()
    uvicorn.run("hookline.main:app", host=cfg.host, port=cfg.port)


if __name__ == "__main__":
    run()
