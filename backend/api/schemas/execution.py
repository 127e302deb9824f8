"""Execution record schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExecutionResponse(BaseModel):
    """Stored workflow execution."""

    execution_id: str = Field(description="Execution ID")
    workflow_id: Optional[str] = Field(default=None, description="Workflow ID")
    workflow_slug: str = Field(description="Workflow slug")
    trigger: Optional[Dict[str, Any]] = Field(default=None, description="What started the run")
    status: str = Field(description="Execution status (running, completed, failed, cancelled)")
    started_at: datetime = Field(description="Execution start timestamp")
    completed_at: Optional[datetime] = Field(default=None, description="Execution completion timestamp")
    duration_ms: Optional[int] = Field(default=None, description="Execution duration in milliseconds")
    input: Optional[Dict[str, Any]] = Field(default=None, description="Run input")
    output: Optional[Dict[str, Any]] = Field(default=None, description="Variable snapshot on success")
    error: Optional[str] = Field(default=None, description="Error message if execution failed")
    error_code: Optional[str] = Field(default=None, description="Machine-readable failure code")
    logs: List[Dict[str, Any]] = Field(default_factory=list, description="Run log entries")

    class Config:
        from_attributes = True


class ExecutionListResponse(BaseModel):
    """Newest executions of a workflow."""

    executions: List[ExecutionResponse] = Field(description="List of executions")
    total: int = Field(description="Number of executions returned")
