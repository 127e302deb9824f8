"""Dead-letter model: failed runs that had no caller to report to."""

from typing import Optional

from sqlalchemy import JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class DeadLetter(BaseModel):
    """A triggered or scheduled run that failed.

    Attributes:
        source_type: What produced the run (form_submission, scheduled, ...)
        source_identifier: Form slug, job id or other source key
        correlation_id: Id tying the entry to the originating event
        workflow_slug: Workflow that failed, when one was matched
        execution_id: Failed execution, when one was started
        job_id: Scheduled job, for job failures
        error: Failure message
        payload: Event payload or job input
    """

    __tablename__ = "dead_letters"

    source_type: Mapped[str] = mapped_column(nullable=False, index=True)
    source_identifier: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    correlation_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    workflow_slug: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    execution_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    job_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    error: Mapped[str] = mapped_column(Text, nullable=False, default="")
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<DeadLetter {self.source_type}:{self.source_identifier} {self.workflow_slug}>"
