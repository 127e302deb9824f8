"""Dead-letter service for runs that failed with no caller waiting on them.

Fire-and-forget trigger runs, dispatch overflow and permanently failed jobs
are stored here for later inspection.
"""

from typing import Optional, Sequence

import structlog
from sqlalchemy import select

from core.utils import to_jsonable
from db.models.dead_letter import DeadLetter
from services.base import BaseService

logger = structlog.get_logger(__name__)


class DeadLetterService(BaseService[DeadLetter]):
    """Service for the dead-letter log."""

    def __init__(self, session_factory):
        super().__init__(DeadLetter, session_factory)

    async def record(
        self,
        source_type: str,
        error: str,
        source_identifier: Optional[str] = None,
        correlation_id: Optional[str] = None,
        workflow_slug: Optional[str] = None,
        execution_id: Optional[str] = None,
        job_id: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> Optional[DeadLetter]:
        """Store a dead letter.

        Storage errors are logged, not raised: the caller is a background
        worker that has nobody to hand the failure to.

        Returns:
            The stored entry, or None if it could not be written
        """
        try:
            entry = await self.create({
                "source_type": source_type,
                "source_identifier": source_identifier,
                "correlation_id": correlation_id,
                "workflow_slug": workflow_slug,
                "execution_id": execution_id,
                "job_id": job_id,
                "error": error,
                "payload": to_jsonable(payload or {}),
            })
        except Exception as e:
            logger.error(
                "dead_letter_write_failed",
                source_type=source_type,
                workflow_slug=workflow_slug,
                error=error,
                write_error=str(e),
            )
            return None

        logger.warning(
            "dead_letter_recorded",
            entry_id=entry.id,
            source_type=source_type,
            source_identifier=source_identifier,
            workflow_slug=workflow_slug,
            execution_id=execution_id,
            error=error,
        )
        return entry

    async def list_recent(
        self,
        limit: int = 50,
        source_type: Optional[str] = None,
    ) -> Sequence[DeadLetter]:
        """Newest dead letters first."""
        query = select(DeadLetter).order_by(DeadLetter.created_at.desc()).limit(limit)
        if source_type:
            query = query.where(DeadLetter.source_type == source_type)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return result.scalars().all()
