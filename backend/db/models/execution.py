"""Execution model for the workflow execution engine."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ExecutionStatus
from db.base import BaseModel


class Execution(BaseModel):
    """Execution model representing one run of a workflow.

    Attributes:
        id: Row identifier (UUID string)
        execution_id: Public execution id (``exec_...``)
        workflow_id: Id of the executed workflow, if known
        workflow_slug: Slug the run was requested for
        trigger: JSON description of what started the run
        status: running, completed, failed or cancelled
        started_at: Execution start timestamp
        completed_at: Execution completion timestamp
        duration_ms: Execution duration in milliseconds
        input: Input payload the run was started with
        output: Variable store snapshot on success
        error: Error message if execution failed
        error_code: Machine-readable failure code
        logs: Append-only run log entries
    """

    __tablename__ = "workflow_executions"

    execution_id: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    workflow_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    workflow_slug: Mapped[str] = mapped_column(nullable=False, index=True)
    trigger: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(
        default=ExecutionStatus.RUNNING.value, index=True
    )
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(nullable=True)
    input: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    output: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_code: Mapped[Optional[str]] = mapped_column(nullable=True)
    logs: Mapped[list] = mapped_column(JSON, default=list)

    def __repr__(self) -> str:
        return f"<Execution {self.execution_id} {self.workflow_slug} ({self.status})>"
