"""Trigger endpoints — hand events to the dispatcher without waiting for runs."""

from uuid import uuid4

from fastapi import APIRouter, Depends, status

from api.schemas.trigger import EventRequest, FormSubmissionRequest, TriggerAccepted
from app.dependencies import get_dispatcher
from triggers.base import TriggerEvent
from triggers.manager import TriggerDispatcher, trigger_event_type

router = APIRouter(tags=["triggers"])


@router.post(
    "/forms/{form_slug}",
    response_model=TriggerAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_form(
    form_slug: str,
    request: FormSubmissionRequest,
    dispatcher: TriggerDispatcher = Depends(get_dispatcher),
) -> TriggerAccepted:
    """Start every active workflow connected to this form."""
    correlation_id = request.correlation_id or uuid4().hex
    accepted = await dispatcher.trigger_workflows_for_form_submission(
        form_slug=form_slug,
        submission_id=request.submission_id,
        data=request.data,
        correlation_id=correlation_id,
    )
    return TriggerAccepted(accepted=accepted, correlation_id=correlation_id)


@router.post(
    "/events",
    response_model=TriggerAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_event(
    request: EventRequest,
    dispatcher: TriggerDispatcher = Depends(get_dispatcher),
) -> TriggerAccepted:
    """Start every active workflow whose trigger node matches the event source."""
    event = TriggerEvent(
        source_type=trigger_event_type(request.source_type),
        source_identifier=request.source_identifier,
        payload=request.payload,
    )
    if request.correlation_id:
        event.correlation_id = request.correlation_id
    accepted = await dispatcher.submit(event)
    return TriggerAccepted(accepted=accepted, correlation_id=event.correlation_id)
