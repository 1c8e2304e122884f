"""Unit tests for ExecutionService and AgentDispatcher."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from prometheus_client import CollectorRegistry

from hookline.metrics import IngestionMetrics
from hookline.runner import (
    AgentDispatcher,
    AgentLaunchError,
    AgentResult,
    AgentRunner,
    ExecutionService,
)
from hookline.store import ExecutionStatus, InMemoryEventStore


def run_async(coro):
    return asyncio.run(coro)


def _mock_runner(result=None, side_effect=None):
    runner = MagicMock(spec=AgentRunner)
    runner.run = AsyncMock(return_value=result, side_effect=side_effect)
    return runner


async def _document(store):
    return await store.add_document(
        event_id=1,
        repository="acme/widgets",
        event_type="issues",
        template="Issue {{ issue.title }}",
        content="Issue Crash on start",
    )


def _sample_count(metrics, status):
    return metrics.registry.get_sample_value(
        "hookline_agent_executions_total", {"status": status}
    )


class TestExecutionService:
    def test_successful_run_recorded(self):
        metrics = IngestionMetrics(registry=CollectorRegistry())
        runner = _mock_runner(AgentResult(0, "All good", "", 1200))

        async def scenario():
            async with InMemoryEventStore() as store:
                document = await _document(store)
                service = ExecutionService(store, runner, metrics)
                record = await service.execute(document)
                return record, await store.latest_execution(document.id)

        record, latest = run_async(scenario())

        runner.run.assert_awaited_once_with("Issue Crash on start")
        assert record == latest
        assert record.status == ExecutionStatus.COMPLETED
        assert record.exit_code == 0
        assert record.stdout == "All good"
        assert record.duration_ms == 1200
        assert _sample_count(metrics, "succeeded") == 1.0

    def test_nonzero_exit_recorded_as_completed(self):
        metrics = IngestionMetrics(registry=CollectorRegistry())
        runner = _mock_runner(AgentResult(1, "", "auth error", 40))

        async def scenario():
            async with InMemoryEventStore() as store:
                service = ExecutionService(store, runner, metrics)
                return await service.execute(await _document(store))

        record = run_async(scenario())

        assert record.status == ExecutionStatus.COMPLETED
        assert record.exit_code == 1
        assert record.stderr == "auth error"
        assert record.succeeded is False
        assert _sample_count(metrics, "failed") == 1.0

    def test_timeout_recorded(self):
        runner = _mock_runner(
            AgentResult(-9, "", "Process timed out after 60s", 60000, timed_out=True)
        )

        async def scenario():
            async with InMemoryEventStore() as store:
                return await ExecutionService(store, runner).execute(
                    await _document(store)
                )

        record = run_async(scenario())

        assert record.status == ExecutionStatus.TIMED_OUT
        assert record.exit_code == -9

    def test_launch_failure_recorded_without_exit_code(self):
        metrics = IngestionMetrics(registry=CollectorRegistry())
        error = FileNotFoundError(2, "No such file or directory", "claude")
        runner = _mock_runner(side_effect=AgentLaunchError(error, 3))

        async def scenario():
            async with InMemoryEventStore() as store:
                service = ExecutionService(store, runner, metrics)
                return await service.execute(await _document(store))

        record = run_async(scenario())

        assert record.status == ExecutionStatus.LAUNCH_FAILED
        assert record.exit_code is None
        assert record.duration_ms == 3
        assert "No such file or directory" in record.error_message
        assert _sample_count(metrics, "launch_failed") == 1.0

    def test_runner_error_recorded_as_errored(self):
        metrics = IngestionMetrics(registry=CollectorRegistry())
        runner = _mock_runner(side_effect=RuntimeError("stdin closed"))

        async def scenario():
            async with InMemoryEventStore() as store:
                document = await _document(store)
                service = ExecutionService(store, runner, metrics)
                record = await service.execute(document)
                return record, await store.latest_execution(document.id)

        record, latest = run_async(scenario())

        assert record == latest
        assert record.status == ExecutionStatus.ERRORED
        assert record.exit_code is None
        assert record.error_message == "RuntimeError: stdin closed"
        assert record.succeeded is False
        assert _sample_count(metrics, "errored") == 1.0


class TestAgentDispatcher:
    def test_submitted_document_executes_in_background(self):
        runner = _mock_runner(AgentResult(0, "done", "", 5))

        async def scenario():
            async with InMemoryEventStore() as store:
                document = await _document(store)
                dispatcher = AgentDispatcher(store, ExecutionService(store, runner))
                dispatcher.submit(document.id)
                in_flight = dispatcher.in_flight
                await dispatcher.drain(timeout=5)
                return in_flight, dispatcher.in_flight, await store.latest_execution(
                    document.id
                )

        in_flight, after, record = run_async(scenario())

        assert in_flight == 1
        assert after == 0
        assert record.stdout == "done"

    def test_missing_document_is_logged_not_raised(self, caplog):
        runner = _mock_runner(AgentResult(0, "", "", 0))

        async def scenario():
            async with InMemoryEventStore() as store:
                dispatcher = AgentDispatcher(store, ExecutionService(store, runner))
                task = dispatcher.submit(999)
                await dispatcher.drain(timeout=5)
                return task

        task = run_async(scenario())

        assert task.exception() is None
        runner.run.assert_not_awaited()
        assert "Failed to get rendered document 999" in caplog.text

    def test_runner_errors_recorded_and_do_not_escape_task(self):
        runner = _mock_runner(side_effect=RuntimeError("boom"))

        async def scenario():
            async with InMemoryEventStore() as store:
                document = await _document(store)
                dispatcher = AgentDispatcher(store, ExecutionService(store, runner))
                task = dispatcher.submit(document.id)
                await dispatcher.drain(timeout=5)
                return task, await store.latest_execution(document.id)

        task, record = run_async(scenario())

        assert task.exception() is None
        assert record.status == ExecutionStatus.ERRORED

    def test_drain_without_tasks_returns(self):
        async def scenario():
            async with InMemoryEventStore() as store:
                dispatcher = AgentDispatcher(
                    store, ExecutionService(store, _mock_runner())
                )
                await dispatcher.drain(timeout=0.1)
                return dispatcher.in_flight

        assert run_async(scenario()) == 0

    def test_concurrent_submissions_each_record(self):
        runner = _mock_runner(AgentResult(0, "ok", "", 1))

        async def scenario():
            async with InMemoryEventStore() as store:
                documents = [await _document(store) for _ in range(3)]
                dispatcher = AgentDispatcher(store, ExecutionService(store, runner))
                for document in documents:
                    dispatcher.submit(document.id)
                await dispatcher.drain(timeout=5)
                return [
                    await store.latest_execution(d.id) for d in documents
                ]

        records = run_async(scenario())

        assert all(r is not None and r.succeeded for r in records)
        assert runner.run.await_count == 3
