"""Scheduled job schemas."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class JobCreate(BaseModel):
    """Request to schedule a workflow run."""

    workflow_slug: str = Field(min_length=1, description="Slug of the workflow to run")
    workflow_id: Optional[str] = Field(default=None, description="Workflow ID, if known")
    scheduled_for: Optional[datetime] = Field(default=None, description="Run at or after this time (default: now)")
    input: Dict[str, Any] = Field(default_factory=dict, description="Input payload for the run")
    max_retries: Optional[int] = Field(default=None, ge=0, description="Reschedules allowed after failures")


class JobCreated(BaseModel):
    job_id: str = Field(description="ID of the scheduled job")


class JobResponse(BaseModel):
    """Scheduled job information."""

    job_id: str = Field(description="Job ID")
    workflow_id: Optional[str] = Field(default=None, description="Workflow ID")
    workflow_slug: str = Field(description="Workflow slug")
    status: str = Field(description="Job status (pending, running, completed, failed)")
    scheduled_for: datetime = Field(description="Earliest time the job may run")
    input: Optional[Dict[str, Any]] = Field(default=None, description="Run input")
    retry_count: int = Field(description="Failed attempts rescheduled so far")
    max_retries: int = Field(description="Reschedules allowed")
    error: Optional[str] = Field(default=None, description="Last failure message")
    execution_id: Optional[str] = Field(default=None, description="Most recent execution")
    started_at: Optional[datetime] = Field(default=None, description="When the last attempt was claimed")
    completed_at: Optional[datetime] = Field(default=None, description="When the job finished")
    created_at: datetime = Field(description="Creation timestamp")

    class Config:
        from_attributes = True


class JobQueueStatus(BaseModel):
    """Job counts by status."""

    pending: int
    running: int
    completed: int
    failed: int
    oldest_pending_at: Optional[datetime] = None


class ProcessedResponse(BaseModel):
    processed: int = Field(description="Jobs claimed and run by this call")
