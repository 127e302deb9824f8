"""Execution record endpoints."""

from fastapi import APIRouter, Depends

from api.schemas.execution import ExecutionResponse
from app.dependencies import get_engine
from core.exceptions import NotFoundError
from workflow.engine import WorkflowEngine

router = APIRouter(tags=["executions"])


@router.get("/{execution_id}", response_model=ExecutionResponse)
async def get_execution(
    execution_id: str,
    engine: WorkflowEngine = Depends(get_engine),
) -> ExecutionResponse:
    """Get a stored execution with its run log."""
    execution = await engine.get_execution(execution_id)
    if execution is None:
        raise NotFoundError(f"Execution not found: {execution_id}")
    return ExecutionResponse.model_validate(execution)
