"""Matching of trigger events against the trigger nodes of stored workflows.

A workflow declares how it may be started with trigger nodes on its canvas.
For form submissions either shape is recognized:

    {"id": "t", "type": "trigger", "data": {"triggerType": "form_submission", "formSlug": "signup"}}
    {"id": "t", "type": "form_trigger", "data": {"formSlug": "signup"}}

A ``formSlug`` of ``"*"`` (or no slug at all) matches every form. Other event
sources match on a ``sourceIdentifier`` key with the same rule.
"""

from typing import Any, Optional

from core.constants import TriggerType
from triggers.base import TriggerEvent
from workflow.graph import WorkflowGraph, WorkflowNode

WILDCARD = "*"


def _settings_of(node: WorkflowNode) -> dict[str, Any]:
    # Trigger settings live under ``data`` in editor canvases, under ``config`` otherwise.
    merged = dict(node.config)
    merged.update(node.data)
    return merged


def _identifier_matches(expected: Optional[str], actual: Optional[str]) -> bool:
    return not expected or expected == WILDCARD or expected == actual


def _declares(settings: dict[str, Any], source_type: str) -> bool:
    return source_type in (
        settings.get("triggerType"),
        settings.get("type"),
        settings.get("eventType"),
    )


def matches_form_submission(node: WorkflowNode, form_slug: str) -> bool:
    """Whether a trigger node fires for a submission of ``form_slug``."""
    settings = _settings_of(node)

    if _declares(settings, TriggerType.FORM_SUBMISSION.value):
        if settings.get("formSlug") == form_slug or settings.get("formId") == form_slug:
            return True
        if _identifier_matches(settings.get("formSlug"), form_slug):
            return True

    if node.type == "form_trigger":
        return _identifier_matches(settings.get("formSlug"), form_slug)

    return False


def matches_trigger(node: WorkflowNode, event: TriggerEvent) -> bool:
    """Whether a single trigger node fires for ``event``."""
    if not node.is_trigger:
        return False

    if event.source_type == TriggerType.FORM_SUBMISSION.value:
        return matches_form_submission(node, event.source_identifier or "")

    settings = _settings_of(node)
    if not _declares(settings, event.source_type):
        return False
    return _identifier_matches(settings.get("sourceIdentifier"), event.source_identifier)


def workflow_matches(canvas: Optional[dict], event: TriggerEvent) -> bool:
    """Whether any trigger node of a canvas fires for ``event``.

    Raises:
        InvalidCanvasError: If the canvas cannot be parsed
    """
    graph = WorkflowGraph.from_canvas(canvas)
    return any(matches_trigger(node, event) for node in graph.trigger_nodes)
