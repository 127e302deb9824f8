"""Trigger Dispatcher — fire-and-forget routing of events to workflows.

The TriggerDispatcher is a singleton that:
1. Accepts trigger events without waiting for any workflow to run
2. Buffers them in a bounded queue drained by a fixed pool of workers
3. Matches each event against the trigger nodes of every active workflow
4. Runs each matching workflow through the engine
5. Records a dead letter for every run nobody could report back to
   (queue overflow, failed run, unexpected error)
"""

import asyncio
import logging
from typing import Any, Optional

from app.config import Settings, get_settings
from core.constants import TriggerType
from core.exceptions import InvalidCanvasError
from core.logging_config import log_context
from services.dead_letter_service import DeadLetterService
from services.workflow_service import WorkflowService
from triggers.base import TriggerEvent
from triggers.matching import workflow_matches
from workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


class TriggerDispatcher:
    """Bounded asynchronous dispatcher for trigger events.

    Singleton pattern — use get_trigger_dispatcher() to access.
    """

    def __init__(
        self,
        engine: WorkflowEngine,
        workflows: WorkflowService,
        dead_letters: DeadLetterService,
        settings: Optional[Settings] = None,
    ):
        self.engine = engine
        self.workflows = workflows
        self.dead_letters = dead_letters
        self.settings = settings or get_settings()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=self.settings.TRIGGER_QUEUE_SIZE)
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        """Events accepted but not yet picked up by a worker."""
        return self._queue.qsize()

    # ─── Lifecycle ─────────────────────────────────────────

    def start(self) -> None:
        """Start the worker pool. Must be called from a running event loop."""
        if self._workers:
            return
        for index in range(self.settings.TRIGGER_WORKERS):
            task = asyncio.create_task(self._worker(), name=f"trigger-worker-{index}")
            self._workers.append(task)
        logger.info(f"Trigger dispatcher started with {len(self._workers)} workers")

    async def stop(self) -> None:
        """Cancel the workers. Events still queued are left unprocessed."""
        if not self._workers:
            return
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        if self._queue.qsize():
            logger.warning("Trigger dispatcher stopped with %d events queued", self._queue.qsize())
        else:
            logger.info("Trigger dispatcher stopped")

    async def join(self) -> None:
        """Wait until every accepted event has been fully handled."""
        await self._queue.join()

    # ─── Submission ────────────────────────────────────────

    async def submit(self, event: TriggerEvent) -> bool:
        """Queue an event for dispatch without waiting for any run.

        Returns:
            True if the event was accepted, False if the queue was full
            (the event is then stored as a dead letter)
        """
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(
                "Trigger queue full, dropping event %s (%s:%s)",
                event.correlation_id,
                event.source_type,
                event.source_identifier,
            )
            await self.dead_letters.record(
                source_type=event.source_type,
                source_identifier=event.source_identifier,
                correlation_id=event.correlation_id,
                error="Trigger queue full",
                payload=event.payload,
            )
            return False
        return True

    async def trigger_workflows_for_form_submission(
        self,
        form_slug: str,
        submission_id: str,
        data: dict[str, Any],
        correlation_id: Optional[str] = None,
    ) -> bool:
        """Start every active workflow connected to a form.

        Returns as soon as the event is queued; the runs happen in the
        background.

        Returns:
            Whether the event was accepted (see ``submit``)
        """
        event = TriggerEvent.form_submission(
            form_slug=form_slug,
            submission_id=submission_id,
            data=data,
            correlation_id=correlation_id,
        )
        return await self.submit(event)

    # ─── Workers ───────────────────────────────────────────

    async def _worker(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                with log_context(correlation_id=event.correlation_id, trigger_source=event.source_type):
                    await self.dispatch(event)
            except Exception as exc:
                logger.error(
                    "Trigger dispatch failed for event %s: %s",
                    event.correlation_id,
                    exc,
                    exc_info=True,
                )
                await self.dead_letters.record(
                    source_type=event.source_type,
                    source_identifier=event.source_identifier,
                    correlation_id=event.correlation_id,
                    error=str(exc) or type(exc).__name__,
                    payload=event.payload,
                )
            finally:
                self._queue.task_done()

    async def dispatch(self, event: TriggerEvent) -> int:
        """Run every active workflow whose trigger nodes match ``event``.

        Returns:
            Number of workflows started
        """
        workflows = await self.workflows.get_all_workflows(active_only=True)
        matched = []
        for workflow in workflows:
            try:
                if workflow_matches(workflow.canvas, event):
                    matched.append(workflow)
            except InvalidCanvasError as exc:
                # One unreadable canvas must not hide the event from the others
                logger.warning(f'Skipping workflow "{workflow.slug}" with an invalid canvas: {exc.message}')
                await self.dead_letters.record(
                    source_type=event.source_type,
                    source_identifier=event.source_identifier,
                    correlation_id=event.correlation_id,
                    workflow_slug=workflow.slug,
                    error=exc.message,
                    payload=event.payload,
                )

        if not matched:
            logger.debug(
                "No workflow matches event %s (%s:%s)",
                event.correlation_id,
                event.source_type,
                event.source_identifier,
            )
            return 0

        for workflow in matched:
            logger.info(
                f'Triggering workflow "{workflow.name}" for {event.source_type} '
                f'"{event.source_identifier}"'
            )
            await self._run_one(workflow, event)
        return len(matched)

    async def _run_one(self, workflow, event: TriggerEvent) -> None:
        execution_id = None
        try:
            result = await self.engine.execute(
                workflow_id=workflow.id,
                workflow_slug=workflow.slug,
                trigger=event.to_trigger(),
                input=event.to_input(),
            )
        except Exception as exc:
            logger.error(
                f'Failed to execute workflow "{workflow.name}": {exc}',
                exc_info=True,
            )
            error = str(exc) or type(exc).__name__
        else:
            if result.success:
                return
            execution_id = result.execution_id
            error = result.error or "Workflow execution failed"
            logger.warning(f'Workflow "{workflow.name}" failed: {error}')

        await self.dead_letters.record(
            source_type=event.source_type,
            source_identifier=event.source_identifier,
            correlation_id=event.correlation_id,
            workflow_slug=workflow.slug,
            execution_id=execution_id,
            error=error,
            payload=event.to_input(),
        )


# ─── Singleton ────────────────────────────────────────────────

_dispatcher: Optional[TriggerDispatcher] = None


def get_trigger_dispatcher() -> TriggerDispatcher:
    """Get or create the process-wide trigger dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        from db.database import AsyncSessionLocal
        from workflow.engine import get_workflow_engine

        _dispatcher = TriggerDispatcher(
            engine=get_workflow_engine(),
            workflows=WorkflowService(AsyncSessionLocal),
            dead_letters=DeadLetterService(AsyncSessionLocal),
        )
    return _dispatcher


def trigger_event_type(value: str) -> str:
    """Normalize a source type string to a known trigger type value."""
    try:
        return TriggerType(value).value
    except ValueError:
        return TriggerType.EVENT.value
