"""Workflow model for the workflow execution engine."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import WorkflowStatus
from db.base import BaseModel


class Workflow(BaseModel):
    """Workflow model holding the node/edge graph of an automation.

    Attributes:
        id: Unique identifier (UUID string)
        name: Workflow name
        slug: Unique, URL-friendly identifier used to execute the workflow
        description: Workflow description
        canvas: JSON graph ``{"nodes": [...], "edges": [...]}``
        version: Workflow version number
        status: Current workflow status (active, inactive, paused)
        total_executions: Runs finished so far
        successful_executions: Runs that completed
        failed_executions: Runs that failed
        avg_execution_time_ms: Mean run duration in milliseconds
        last_executed_at: When the last run finished
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "workflows"

    name: Mapped[str] = mapped_column(nullable=False, index=True)
    slug: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(nullable=False, default="")
    canvas: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    version: Mapped[int] = mapped_column(default=1)
    status: Mapped[str] = mapped_column(
        default=WorkflowStatus.ACTIVE.value, index=True
    )

    # Run statistics
    total_executions: Mapped[int] = mapped_column(default=0)
    successful_executions: Mapped[int] = mapped_column(default=0)
    failed_executions: Mapped[int] = mapped_column(default=0)
    avg_execution_time_ms: Mapped[float] = mapped_column(default=0.0)
    last_executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Workflow {self.slug} v{self.version} ({self.status})>"
