"""Scheduled workflow job queue.

Jobs are rows in ``workflow_jobs``. A poller (Celery beat, or a direct call)
runs ``process_pending_jobs``, which claims due jobs one at a time with an
atomic ``pending -> running`` update and runs them through the engine.

A failed attempt (the run reports ``success=False`` or the engine raises)
is rescheduled with backoff until ``max_retries`` reschedules have been used;
the next failure marks the job ``failed`` and records a dead letter.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from app.config import Settings, get_settings
from core.constants import JobStatus, TriggerType
from core.exceptions import ConflictError, NotFoundError
from core.utils import utcnow
from db.models.job import WorkflowJob
from services.dead_letter_service import DeadLetterService
from services.job_service import JobService
from workflow.engine import WorkflowEngine
from workflow.retry_strategies import RetryStrategy

logger = structlog.get_logger(__name__)


def _naive_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class JobQueue:
    """Schedules workflow runs and drives them to completion with retries."""

    def __init__(
        self,
        engine: WorkflowEngine,
        jobs: JobService,
        dead_letters: DeadLetterService,
        settings: Optional[Settings] = None,
        strategy: Optional[RetryStrategy] = None,
    ):
        self.engine = engine
        self.jobs = jobs
        self.dead_letters = dead_letters
        self.settings = settings or get_settings()
        self.strategy = strategy or RetryStrategy.from_settings(self.settings)

    # ─── Scheduling ────────────────────────────────────────

    async def schedule_workflow(
        self,
        workflow_slug: str,
        scheduled_for: Optional[datetime] = None,
        input: Optional[dict] = None,
        workflow_id: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> str:
        """Queue a workflow run for ``scheduled_for`` (default: now).

        Returns:
            The new job id
        """
        job = await self.jobs.create_job(
            workflow_slug=workflow_slug,
            workflow_id=workflow_id,
            scheduled_for=_naive_utc(scheduled_for),
            input=input,
            max_retries=self.strategy.max_retries if max_retries is None else max_retries,
        )
        logger.info(
            "Workflow job scheduled",
            job_id=job.job_id,
            workflow_slug=workflow_slug,
            scheduled_for=job.scheduled_for.isoformat(),
        )
        return job.job_id

    # ─── Processing ────────────────────────────────────────

    async def process_pending_jobs(self) -> int:
        """Run every due pending job, up to ``JOB_BATCH_SIZE`` of them.

        Returns:
            Number of jobs this call claimed and ran
        """
        due = await self.jobs.find_due_job_ids(utcnow(), self.settings.JOB_BATCH_SIZE)
        processed = 0

        for job_id in due:
            job = await self.jobs.claim_job(job_id)
            if job is None:
                continue
            await self._run_job(job)
            processed += 1

        if processed:
            logger.info("Processed workflow jobs", processed=processed, due=len(due))
        return processed

    async def _run_job(self, job: WorkflowJob) -> None:
        log = logger.bind(job_id=job.job_id, workflow_slug=job.workflow_slug)
        execution_id: Optional[str] = None

        try:
            result = await self.engine.execute(
                workflow_id=job.workflow_id,
                workflow_slug=job.workflow_slug,
                trigger={"type": TriggerType.SCHEDULED.value, "jobId": job.job_id},
                input=job.input or {},
            )
        except Exception as e:
            log.exception("Job execution raised")
            error = str(e) or type(e).__name__
        else:
            execution_id = result.execution_id
            if result.success:
                await self.jobs.complete_job(job.job_id, execution_id)
                log.info("Workflow job completed", execution_id=execution_id)
                return
            error = result.error or "Workflow execution failed"

        await self._handle_failure(job, error, execution_id)

    async def _handle_failure(self, job: WorkflowJob, error: str, execution_id: Optional[str]) -> None:
        if self.strategy.should_retry(job.retry_count, job.max_retries):
            retry_count = job.retry_count + 1
            run_at = self.strategy.next_run_at(utcnow(), retry_count)
            await self.jobs.reschedule_job(
                job.job_id,
                retry_count=retry_count,
                scheduled_for=run_at,
                error=error,
                execution_id=execution_id,
            )
            logger.warning(
                "Workflow job failed, rescheduled",
                job_id=job.job_id,
                retry_count=retry_count,
                max_retries=job.max_retries,
                scheduled_for=run_at.isoformat(),
                error=error,
            )
            return

        await self.jobs.fail_job(job.job_id, error, execution_id)
        await self.dead_letters.record(
            source_type=TriggerType.SCHEDULED.value,
            source_identifier=job.job_id,
            workflow_slug=job.workflow_slug,
            execution_id=execution_id,
            job_id=job.job_id,
            error=error,
            payload=job.input,
        )
        logger.error(
            "Workflow job failed permanently",
            job_id=job.job_id,
            retry_count=job.retry_count,
            error=error,
        )

    # ─── Management ────────────────────────────────────────

    async def get_job(self, job_id: str) -> WorkflowJob:
        job = await self.jobs.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return job

    async def retry_job(self, job_id: str) -> WorkflowJob:
        """Requeue a failed (or stuck) job to run as soon as possible.

        Raises:
            NotFoundError: If the job does not exist
            ConflictError: If the job already completed
        """
        job = await self.get_job(job_id)
        if not await self.jobs.reset_job(job_id, previous_error=job.error):
            raise ConflictError(f"Job {job_id} cannot be retried from status '{job.status}'")
        logger.info("Workflow job manually retried", job_id=job_id)
        return await self.get_job(job_id)

    async def cancel_job(self, job_id: str) -> WorkflowJob:
        """Cancel a job that has not finished.

        Raises:
            NotFoundError: If the job does not exist
            ConflictError: If the job already completed or failed
        """
        job = await self.get_job(job_id)
        if not await self.jobs.cancel_job(job_id):
            raise ConflictError(f"Job {job_id} cannot be cancelled from status '{job.status}'")
        logger.info("Workflow job cancelled", job_id=job_id)
        return await self.get_job(job_id)

    async def get_job_queue_status(self) -> dict[str, Any]:
        """Job counts by status and the oldest pending schedule time."""
        counts = await self.jobs.count_by_status()
        return {
            "pending": counts.get(JobStatus.PENDING.value, 0),
            "running": counts.get(JobStatus.RUNNING.value, 0),
            "completed": counts.get(JobStatus.COMPLETED.value, 0),
            "failed": counts.get(JobStatus.FAILED.value, 0),
            "oldest_pending_at": counts.get("oldest_pending_at"),
        }


# ─── Singleton ────────────────────────────────────────────────

def build_job_queue(session_factory, engine: WorkflowEngine, settings: Optional[Settings] = None) -> JobQueue:
    """Wire a job queue to a session factory and an engine."""
    return JobQueue(
        engine=engine,
        jobs=JobService(session_factory),
        dead_letters=DeadLetterService(session_factory),
        settings=settings,
    )


_queue: Optional[JobQueue] = None


def get_job_queue() -> JobQueue:
    """Get or create the process-wide job queue."""
    global _queue
    if _queue is None:
        from db.database import AsyncSessionLocal
        from workflow.engine import get_workflow_engine

        _queue = build_job_queue(AsyncSessionLocal, get_workflow_engine())
    return _queue
