"""Trigger event model shared by the dispatcher and the API."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from core.constants import TriggerType
from core.utils import isoformat, utcnow


@dataclass
class TriggerEvent:
    """Represents a single trigger firing event.

    This is the payload that gets passed from an event source (a form
    submission, a webhook call, an internal event) to the dispatcher, which
    matches it against the trigger nodes of every active workflow.
    """

    source_type: str
    source_identifier: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)
    correlation_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def form_submission(
        cls,
        form_slug: str,
        submission_id: str,
        data: dict[str, Any],
        correlation_id: Optional[str] = None,
    ) -> "TriggerEvent":
        event = cls(
            source_type=TriggerType.FORM_SUBMISSION.value,
            source_identifier=form_slug,
            payload={"submissionId": submission_id, "submission": data},
        )
        if correlation_id:
            event.correlation_id = correlation_id
        return event

    def to_trigger(self) -> dict[str, Any]:
        """Trigger description stored on the execution record."""
        if self.source_type == TriggerType.FORM_SUBMISSION.value:
            return {
                "type": self.source_type,
                "formSlug": self.source_identifier,
                "submissionId": self.payload.get("submissionId"),
            }
        return {
            "type": self.source_type,
            "sourceIdentifier": self.source_identifier,
            "correlationId": self.correlation_id,
        }

    def to_input(self) -> dict[str, Any]:
        """Input payload a matched workflow runs with."""
        if self.source_type == TriggerType.FORM_SUBMISSION.value:
            return {
                "submission": self.payload.get("submission") or {},
                "formSlug": self.source_identifier,
                "submissionId": self.payload.get("submissionId"),
                "submittedAt": isoformat(self.timestamp),
            }
        return dict(self.payload)
