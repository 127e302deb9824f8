"""Workflow schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from core.constants import WorkflowStatus
from core.exceptions import InvalidCanvasError
from workflow.graph import WorkflowGraph


class WorkflowCreate(BaseModel):
    """Request to create a workflow."""

    name: str = Field(min_length=1, description="Workflow name")
    slug: Optional[str] = Field(default=None, description="Unique slug; derived from the name if omitted")
    description: str = Field(default="", description="Workflow description")
    canvas: Dict[str, Any] = Field(
        default_factory=lambda: {"nodes": [], "edges": []},
        description="Node/edge graph",
    )
    status: WorkflowStatus = Field(default=WorkflowStatus.ACTIVE, description="Workflow status")

    @field_validator("canvas")
    @classmethod
    def _check_canvas(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        try:
            graph = WorkflowGraph.from_canvas(value)
        except InvalidCanvasError as e:
            raise ValueError(e.message)
        untyped = [node.id for node in graph.nodes if not node.type]
        if untyped:
            raise ValueError(f"Canvas nodes without a 'type': {', '.join(untyped)}")
        return value


class WorkflowStatusUpdate(BaseModel):
    """Request to activate, deactivate or pause a workflow."""

    status: WorkflowStatus = Field(description="New workflow status")


class WorkflowResponse(BaseModel):
    """Workflow information response."""

    id: str = Field(description="Workflow ID")
    name: str = Field(description="Workflow name")
    slug: str = Field(description="Workflow slug")
    description: str = Field(description="Workflow description")
    canvas: Optional[Dict[str, Any]] = Field(default=None, description="Node/edge graph")
    version: int = Field(description="Workflow version number")
    status: str = Field(description="Current workflow status (active, inactive, paused)")
    total_executions: int = Field(default=0, description="Runs finished so far")
    successful_executions: int = Field(default=0, description="Runs that completed")
    failed_executions: int = Field(default=0, description="Runs that failed")
    avg_execution_time_ms: float = Field(default=0.0, description="Mean run duration in milliseconds")
    last_executed_at: Optional[datetime] = Field(default=None, description="When the last run finished")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last update timestamp")

    class Config:
        from_attributes = True


class WorkflowListResponse(BaseModel):
    """List of workflows."""

    workflows: List[WorkflowResponse] = Field(description="List of workflows")
    total: int = Field(description="Number of workflows returned")


class ExecuteRequest(BaseModel):
    """Request to run a workflow now."""

    input: Dict[str, Any] = Field(default_factory=dict, description="Input payload for the run")
    trigger: Optional[Dict[str, Any]] = Field(
        default=None, description="Trigger description; defaults to a manual trigger"
    )


class ExecutionResultResponse(BaseModel):
    """Outcome of a synchronous workflow run."""

    success: bool = Field(description="Whether the run completed")
    execution_id: str = Field(description="Execution ID")
    output: Optional[Dict[str, Any]] = Field(default=None, description="Variable snapshot on success")
    error: Optional[str] = Field(default=None, description="Failure message")
    error_code: Optional[str] = Field(default=None, description="Machine-readable failure code")
