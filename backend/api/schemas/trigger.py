"""Trigger and dead-letter schemas."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class FormSubmissionRequest(BaseModel):
    """A submitted form to route to connected workflows."""

    submission_id: str = Field(min_length=1, description="ID of the form submission")
    data: Dict[str, Any] = Field(default_factory=dict, description="Submitted field values")
    correlation_id: Optional[str] = Field(default=None, description="Caller-supplied correlation ID")


class EventRequest(BaseModel):
    """A generic event to route to workflows with a matching trigger node."""

    source_type: str = Field(min_length=1, description="Event source (webhook, event, api, ...)")
    source_identifier: Optional[str] = Field(default=None, description="Source key trigger nodes match on")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Input payload for matched runs")
    correlation_id: Optional[str] = Field(default=None, description="Caller-supplied correlation ID")


class TriggerAccepted(BaseModel):
    """Acknowledgement that an event was queued."""

    accepted: bool = Field(description="False when the queue was full and the event was dead-lettered")
    correlation_id: str = Field(description="ID to look the event up in the dead-letter log")


class DeadLetterResponse(BaseModel):
    """A run that failed with nobody waiting on it."""

    id: str
    source_type: str
    source_identifier: Optional[str] = None
    correlation_id: Optional[str] = None
    workflow_slug: Optional[str] = None
    execution_id: Optional[str] = None
    job_id: Optional[str] = None
    error: str
    payload: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True
