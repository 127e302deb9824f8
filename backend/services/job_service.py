"""Job service: persistence for the scheduled workflow job queue.

State transitions are conditional updates on the current status, so two
pollers racing for the same job can never both claim it.
"""

import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import func, select

from core.constants import JobStatus
from core.utils import new_job_id, to_jsonable, utcnow
from db.models.job import WorkflowJob
from services.base import BaseService

logger = logging.getLogger(__name__)


class JobService(BaseService[WorkflowJob]):
    """Service for scheduled workflow jobs."""

    def __init__(self, session_factory):
        super().__init__(WorkflowJob, session_factory)

    # ─── Create / Read ─────────────────────────────────────

    async def create_job(
        self,
        workflow_slug: str,
        scheduled_for: datetime,
        workflow_id: Optional[str] = None,
        input: Optional[dict] = None,
        max_retries: int = 3,
    ) -> WorkflowJob:
        """Insert a pending job."""
        return await self.create({
            "job_id": new_job_id(),
            "workflow_id": workflow_id,
            "workflow_slug": workflow_slug,
            "status": JobStatus.PENDING.value,
            "scheduled_for": scheduled_for,
            "input": to_jsonable(input or {}),
            "retry_count": 0,
            "max_retries": max_retries,
        })

    async def get_job(self, job_id: str) -> Optional[WorkflowJob]:
        """Load a job by its public id."""
        return await self.get_by(job_id=job_id)

    async def find_due_job_ids(self, now: datetime, limit: int) -> list[str]:
        """Ids of pending jobs due at ``now``, earliest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(WorkflowJob.job_id)
                .where(
                    WorkflowJob.status == JobStatus.PENDING.value,
                    WorkflowJob.scheduled_for <= now,
                )
                .order_by(WorkflowJob.scheduled_for.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def count_by_status(self) -> dict[str, Any]:
        """Number of jobs per status, plus the oldest pending schedule time."""
        counts = {status.value: 0 for status in JobStatus}
        async with self.session_factory() as session:
            result = await session.execute(
                select(WorkflowJob.status, func.count()).group_by(WorkflowJob.status)
            )
            for status, count in result.all():
                counts[status] = count

            oldest = await session.execute(
                select(func.min(WorkflowJob.scheduled_for)).where(
                    WorkflowJob.status == JobStatus.PENDING.value
                )
            )
            counts["oldest_pending_at"] = oldest.scalar()
        return counts

    # ─── Transitions ───────────────────────────────────────

    async def claim_job(self, job_id: str) -> Optional[WorkflowJob]:
        """Atomically move a job from pending to running.

        Returns:
            The claimed job, or None when another poller got there first
        """
        claimed = await self._transition(
            job_id,
            [JobStatus.PENDING],
            {"status": JobStatus.RUNNING.value, "started_at": utcnow()},
        )
        if not claimed:
            logger.debug(f"Job {job_id} already claimed")
            return None
        return await self.get_job(job_id)

    async def complete_job(self, job_id: str, execution_id: Optional[str]) -> bool:
        """Mark a running job completed."""
        return await self._transition(
            job_id,
            [JobStatus.RUNNING],
            {
                "status": JobStatus.COMPLETED.value,
                "execution_id": execution_id,
                "error": None,
                "completed_at": utcnow(),
            },
        )

    async def reschedule_job(
        self,
        job_id: str,
        retry_count: int,
        scheduled_for: datetime,
        error: str,
        execution_id: Optional[str] = None,
    ) -> bool:
        """Put a failed running job back in the queue for a later attempt."""
        return await self._transition(
            job_id,
            [JobStatus.RUNNING],
            {
                "status": JobStatus.PENDING.value,
                "retry_count": retry_count,
                "scheduled_for": scheduled_for,
                "error": error,
                "execution_id": execution_id,
            },
        )

    async def fail_job(self, job_id: str, error: str, execution_id: Optional[str] = None) -> bool:
        """Mark a running job permanently failed."""
        return await self._transition(
            job_id,
            [JobStatus.RUNNING],
            {
                "status": JobStatus.FAILED.value,
                "error": error,
                "execution_id": execution_id,
                "completed_at": utcnow(),
            },
        )

    async def reset_job(self, job_id: str, previous_error: Optional[str] = None) -> bool:
        """Requeue a failed, pending or stale running job to run now."""
        error = f"Manually retried. Previous error: {previous_error}" if previous_error else None
        return await self._transition(
            job_id,
            [JobStatus.FAILED, JobStatus.PENDING, JobStatus.RUNNING],
            {
                "status": JobStatus.PENDING.value,
                "scheduled_for": utcnow(),
                "error": error,
                "completed_at": None,
            },
        )

    async def cancel_job(self, job_id: str) -> bool:
        """Fail a pending or running job on user request."""
        return await self._transition(
            job_id,
            [JobStatus.PENDING, JobStatus.RUNNING],
            {
                "status": JobStatus.FAILED.value,
                "error": "Cancelled by user",
                "completed_at": utcnow(),
            },
        )

    async def _transition(
        self,
        job_id: str,
        from_statuses: Sequence[JobStatus],
        values: dict[str, Any],
    ) -> bool:
        changed = await self.update_where(
            [
                WorkflowJob.job_id == job_id,
                WorkflowJob.status.in_([s.value for s in from_statuses]),
            ],
            values,
        )
        return changed > 0
