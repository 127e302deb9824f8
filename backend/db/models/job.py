"""Scheduled job model for the workflow execution engine."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import JobStatus
from db.base import BaseModel


class WorkflowJob(BaseModel):
    """A request to run a workflow at or after ``scheduled_for``.

    Attributes:
        job_id: Public job id (``job_...``)
        workflow_id: Id of the workflow to run
        workflow_slug: Slug of the workflow to run
        status: pending, running, completed or failed
        scheduled_for: Earliest time the job may be picked up
        input: Input payload handed to the executor
        retry_count: Failed attempts that were rescheduled so far
        max_retries: Reschedules allowed before the job fails for good
        error: Last failure message
        execution_id: Execution id of the most recent attempt
        started_at: When the most recent attempt was claimed
        completed_at: When the job reached a terminal status
    """

    __tablename__ = "workflow_jobs"

    job_id: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    workflow_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    workflow_slug: Mapped[str] = mapped_column(nullable=False, index=True)
    status: Mapped[str] = mapped_column(default=JobStatus.PENDING.value, index=True)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    input: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    retry_count: Mapped[int] = mapped_column(default=0)
    max_retries: Mapped[int] = mapped_column(default=3)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    execution_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<WorkflowJob {self.job_id} {self.workflow_slug} ({self.status})>"
