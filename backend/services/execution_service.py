"""Execution service: durable record of every workflow run.

Every write after creation is guarded by ``status == 'running'`` so a record
that reached a terminal status is never mutated again.
"""

import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import select

from core.constants import ExecutionStatus
from core.utils import to_jsonable, utcnow
from db.models.execution import Execution
from services.base import BaseService

logger = logging.getLogger(__name__)


class ExecutionService(BaseService[Execution]):
    """Service for workflow execution records."""

    def __init__(self, session_factory):
        super().__init__(Execution, session_factory)

    # ─── Write ─────────────────────────────────────────────

    async def create_execution(
        self,
        execution_id: str,
        workflow_slug: str,
        started_at: datetime,
        workflow_id: Optional[str] = None,
        trigger: Optional[dict] = None,
        input: Optional[dict] = None,
        logs: Optional[list] = None,
    ) -> Execution:
        """Insert a new execution in ``running`` status."""
        return await self.create({
            "execution_id": execution_id,
            "workflow_id": workflow_id,
            "workflow_slug": workflow_slug,
            "trigger": to_jsonable(trigger or {}),
            "status": ExecutionStatus.RUNNING.value,
            "started_at": started_at,
            "input": to_jsonable(input or {}),
            "logs": to_jsonable(logs or []),
        })

    async def update_logs(
        self,
        execution_id: str,
        logs: list[dict],
        workflow_id: Optional[str] = None,
    ) -> bool:
        """Replace the persisted log buffer of a running execution."""
        values: dict[str, Any] = {"logs": to_jsonable(logs)}
        if workflow_id is not None:
            values["workflow_id"] = workflow_id
        return await self._update_running(execution_id, values)

    async def complete_execution(
        self,
        execution_id: str,
        output: dict,
        logs: list[dict],
    ) -> bool:
        """Mark a running execution completed with its variable snapshot."""
        return await self._finish(
            execution_id,
            ExecutionStatus.COMPLETED,
            {"output": to_jsonable(output), "logs": to_jsonable(logs)},
        )

    async def fail_execution(
        self,
        execution_id: str,
        error: str,
        logs: list[dict],
        error_code: Optional[str] = None,
    ) -> bool:
        """Mark a running execution failed."""
        return await self._finish(
            execution_id,
            ExecutionStatus.FAILED,
            {"error": error, "error_code": error_code, "logs": to_jsonable(logs)},
        )

    async def _finish(self, execution_id: str, status: ExecutionStatus, values: dict) -> bool:
        completed_at = utcnow()
        values = {**values, "status": status.value, "completed_at": completed_at}

        started_at = await self._started_at(execution_id)
        if started_at is not None:
            values["duration_ms"] = max(0, int((completed_at - started_at).total_seconds() * 1000))

        if not await self._update_running(execution_id, values):
            logger.warning(f"Execution {execution_id} not running; {status.value} update ignored")
            return False
        return True

    async def _update_running(self, execution_id: str, values: dict) -> bool:
        changed = await self.update_where(
            [
                Execution.execution_id == execution_id,
                Execution.status == ExecutionStatus.RUNNING.value,
            ],
            values,
        )
        return changed > 0

    async def _started_at(self, execution_id: str) -> Optional[datetime]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Execution.started_at).where(Execution.execution_id == execution_id)
            )
            return result.scalar_one_or_none()

    # ─── Read ──────────────────────────────────────────────

    async def get_execution(self, execution_id: str) -> Optional[Execution]:
        """Load an execution by its public id."""
        return await self.get_by(execution_id=execution_id)

    async def list_recent(self, workflow_slug: str, limit: int = 10) -> Sequence[Execution]:
        """Most recent executions of a workflow, newest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Execution)
                .where(Execution.workflow_slug == workflow_slug)
                .order_by(Execution.started_at.desc(), Execution.created_at.desc())
                .limit(limit)
            )
            return result.scalars().all()
