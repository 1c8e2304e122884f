"""Agent execution and background dispatch.

ExecutionService runs the agent against a rendered document and records
an ExecutionRecord for every outcome, including launch failures. It
backs both the manual execute-now endpoint and background dispatch.

AgentDispatcher runs executions as detached asyncio tasks so webhook
responses never wait on the agent. A task receives only the document id
and reports completion by writing to the store, with no reference to
the request that triggered it.
"""

import asyncio
import logging
import time
from typing import Optional, Set

from ..metrics import IngestionMetrics
from ..store.base import EventStore
from ..store.models import ExecutionRecord, ExecutionStatus, RenderedDocument
from .agent import AgentLaunchError, AgentRunner

logger = logging.getLogger(__name__)


class ExecutionService:
    """Runs the agent for a document and persists the outcome.

    Attributes:
        store: Event store receiving execution records.
        runner: Agent subprocess runner.
        metrics: Optional metrics sink.
    """

    def __init__(
        self,
        store: EventStore,
        runner: AgentRunner,
        metrics: Optional[IngestionMetrics] = None,
    ):
        self.store = store
        self.runner = runner
        self.metrics = metrics

    async def execute(self, document: RenderedDocument) -> ExecutionRecord:
        """Run the agent on a document and record the result.

        Args:
            document: The rendered document to execute.

        Returns:
            The persisted ExecutionRecord. Launch failures are recorded
            with status LAUNCH_FAILED and no exit code; any other error
            raised by the runner is recorded with status ERRORED.

        Raises:
            PersistenceError: If the record cannot be stored.
        """
        logger.info(
            "Executing agent for document %d (%s/%s)",
            document.id,
            document.repository,
            document.event_type,
        )

        start_time = time.monotonic()
        try:
            result = await self.runner.run(document.content)
        except AgentLaunchError as exc:
            record = await self.store.add_execution(
                document_id=document.id,
                status=ExecutionStatus.LAUNCH_FAILED,
                duration_ms=exc.duration_ms,
                error_message=str(exc.original_error),
            )
            self._record_metrics("launch_failed", exc.duration_ms)
            return record
        except Exception as exc:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.exception(
                "Agent execution failed for document %d", document.id
            )
            record = await self.store.add_execution(
                document_id=document.id,
                status=ExecutionStatus.ERRORED,
                duration_ms=duration_ms,
                error_message=f"{type(exc).__name__}: {exc}",
            )
            self._record_metrics("errored", duration_ms)
            return record

        status = (
            ExecutionStatus.TIMED_OUT if result.timed_out
            else ExecutionStatus.COMPLETED
        )
        record = await self.store.add_execution(
            document_id=document.id,
            status=status,
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
        )

        if result.timed_out:
            self._record_metrics("timed_out", result.duration_ms)
        else:
            self._record_metrics(
                "succeeded" if result.success else "failed",
                result.duration_ms,
            )

        logger.info(
            "Agent response stored for document %d - record %d (%dms)",
            document.id,
            record.id,
            record.duration_ms,
        )
        return record

    def _record_metrics(self, status: str, duration_ms: int) -> None:
        if self.metrics is not None:
            self.metrics.record_execution(status, duration_ms)


class AgentDispatcher:
    """Runs agent executions as detached background tasks.

    No de-duplication, concurrency limit or queueing is applied: every
    submission starts its own agent process.
    """

    def __init__(self, store: EventStore, execution_service: ExecutionService):
        self.store = store
        self.execution_service = execution_service
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, document_id: int) -> asyncio.Task:
        """Schedule an agent execution for a persisted document.

        Must be called from a running event loop.

        Args:
            document_id: Id of the RenderedDocument to execute.

        Returns:
            The scheduled task.
        """
        task = asyncio.create_task(
            self._run(document_id), name=f"agent-document-{document_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, document_id: int) -> None:
        try:
            document = await self.store.get_document(document_id)
            if document is None:
                logger.error(
                    "Failed to get rendered document %d for auto-execution",
                    document_id,
                )
                return
            await self.execution_service.execute(document)
        except Exception:
            logger.exception(
                "Background agent execution failed",
                extra={"document_id": document_id},
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight executions to finish.

        Running executions are not cancelled; tasks still running when
        the timeout expires are left to the event loop's shutdown.

        Args:
            timeout: Maximum seconds to wait, or None to wait indefinitely.
        """
        if not self._tasks:
            return
        pending = set(self._tasks)
        logger.info("Waiting for %d agent execution(s)", len(pending))
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            logger.warning(
                "%d agent execution(s) still running at shutdown",
                len(still_running),
            )
