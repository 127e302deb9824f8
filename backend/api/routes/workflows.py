"""Workflow endpoints: create, list, execute, change status, execution history."""

from fastapi import APIRouter, Depends, Query, status

from api.schemas.execution import ExecutionListResponse, ExecutionResponse
from api.schemas.workflow import (
    ExecuteRequest,
    ExecutionResultResponse,
    WorkflowCreate,
    WorkflowListResponse,
    WorkflowResponse,
    WorkflowStatusUpdate,
)
from app.dependencies import get_engine
from core.exceptions import NotFoundError
from workflow.engine import WorkflowEngine

router = APIRouter(tags=["workflows"])


@router.get("", response_model=WorkflowListResponse)
async def list_workflows(
    active_only: bool = Query(default=False, description="Only return active workflows"),
    engine: WorkflowEngine = Depends(get_engine),
) -> WorkflowListResponse:
    """List stored workflows, oldest first."""
    workflows = await engine.workflows.get_all_workflows(active_only=active_only)
    return WorkflowListResponse(
        workflows=[WorkflowResponse.model_validate(wf) for wf in workflows],
        total=len(workflows),
    )


@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    request: WorkflowCreate,
    engine: WorkflowEngine = Depends(get_engine),
) -> WorkflowResponse:
    """Store a new workflow graph."""
    workflow = await engine.workflows.create_workflow(
        name=request.name,
        canvas=request.canvas,
        slug=request.slug,
        description=request.description,
        status=request.status.value,
    )
    return WorkflowResponse.model_validate(workflow)


@router.get("/{slug}", response_model=WorkflowResponse)
async def get_workflow(
    slug: str,
    engine: WorkflowEngine = Depends(get_engine),
) -> WorkflowResponse:
    """Get a workflow by slug."""
    workflow = await engine.workflows.get_workflow_by_slug(slug)
    if workflow is None:
        raise NotFoundError(f"Workflow not found: {slug}")
    return WorkflowResponse.model_validate(workflow)


@router.post("/{slug}/execute", response_model=ExecutionResultResponse)
async def execute_workflow(
    slug: str,
    request: ExecuteRequest,
    engine: WorkflowEngine = Depends(get_engine),
) -> ExecutionResultResponse:
    """
    Run a workflow now and wait for the result.

    A failed run is still a 200 response; ``success`` and ``error_code``
    describe the failure.
    """
    result = await engine.execute(
        workflow_id=None,
        workflow_slug=slug,
        trigger=request.trigger or {"type": "api"},
        input=request.input,
    )
    return ExecutionResultResponse(**result.to_dict())


@router.get("/{slug}/executions", response_model=ExecutionListResponse)
async def list_workflow_executions(
    slug: str,
    limit: int = Query(default=10, ge=1, le=100),
    engine: WorkflowEngine = Depends(get_engine),
) -> ExecutionListResponse:
    """Newest executions of a workflow."""
    executions = await engine.get_recent_executions(slug, limit=limit)
    return ExecutionListResponse(
        executions=[ExecutionResponse.model_validate(e) for e in executions],
        total=len(executions),
    )


@router.patch("/{slug}/status", response_model=WorkflowResponse)
async def update_workflow_status(
    slug: str,
    request: WorkflowStatusUpdate,
    engine: WorkflowEngine = Depends(get_engine),
) -> WorkflowResponse:
    """Activate, deactivate or pause a workflow. Only active workflows react to triggers."""
    workflow = await engine.workflows.update_workflow_status(slug, request.status.value)
    return WorkflowResponse.model_validate(workflow)
