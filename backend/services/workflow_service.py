"""Workflow service: the graph store read by the executor and triggers."""

import logging
from typing import Optional, Sequence

from sqlalchemy import select

from core.constants import WorkflowStatus
from core.exceptions import ConflictError, NotFoundError
from core.utils import generate_slug, utcnow
from db.models.workflow import Workflow
from services.base import BaseService

logger = logging.getLogger(__name__)


class WorkflowService(BaseService[Workflow]):
    """Service for workflow graph storage."""

    def __init__(self, session_factory):
        super().__init__(Workflow, session_factory)

    async def create_workflow(
        self,
        name: str,
        canvas: Optional[dict] = None,
        slug: Optional[str] = None,
        description: str = "",
        status: str = WorkflowStatus.ACTIVE.value,
    ) -> Workflow:
        """Create a new workflow.

        Raises:
            ConflictError: If the slug is already taken
        """
        slug = slug or generate_slug(name)
        if await self.get_by(slug=slug) is not None:
            raise ConflictError(f"Workflow slug already exists: {slug}")

        workflow = await self.create({
            "name": name,
            "slug": slug,
            "description": description,
            "canvas": canvas or {"nodes": [], "edges": []},
            "status": status,
            "version": 1,
        })
        logger.info(f"Workflow created: {slug}")
        return workflow

    async def get_workflow_by_slug(self, slug: str) -> Optional[Workflow]:
        """Load a workflow by its slug, or None."""
        return await self.get_by(slug=slug)

    async def get_all_workflows(self, active_only: bool = True) -> Sequence[Workflow]:
        """Return every workflow, by default only the active ones."""
        query = select(Workflow).order_by(Workflow.created_at.asc())
        if active_only:
            query = query.where(Workflow.status == WorkflowStatus.ACTIVE.value)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return result.scalars().all()

    async def update_workflow_status(self, slug: str, status: str) -> Workflow:
        """Activate, deactivate or pause a workflow.

        Only active workflows are matched by trigger events.

        Raises:
            ValueError: If ``status`` is not a workflow status
            NotFoundError: If no workflow has this slug
        """
        status = WorkflowStatus(status).value
        changed = await self.update_where([Workflow.slug == slug], {"status": status})
        if not changed:
            raise NotFoundError(f"Workflow not found: {slug}")
        logger.info(f"Workflow {slug} is now {status}")
        return await self.get_by(slug=slug)

    async def record_run(self, slug: str, success: bool, duration_ms: float) -> bool:
        """Fold one finished run into the workflow's statistics.

        The counters are updated in a single statement, so concurrent runs
        of the same workflow never lose an increment.

        Returns:
            False if no workflow has this slug
        """
        total = Workflow.total_executions
        values = {
            "total_executions": total + 1,
            "avg_execution_time_ms": (Workflow.avg_execution_time_ms * total + duration_ms) / (total + 1),
            "last_executed_at": utcnow(),
        }
        if success:
            values["successful_executions"] = Workflow.successful_executions + 1
        else:
            values["failed_executions"] = Workflow.failed_executions + 1
        return bool(await self.update_where([Workflow.slug == slug], values))
