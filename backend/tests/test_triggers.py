"""Tests for trigger matching and the trigger dispatcher."""

import pytest

from core.constants import TriggerType, WorkflowStatus
from core.exceptions import InvalidCanvasError
from triggers.base import TriggerEvent
from triggers.manager import TriggerDispatcher, trigger_event_type
from triggers.matching import matches_trigger, workflow_matches
from workflow.graph import WorkflowNode


def form_node(**data) -> dict:
    return {"id": "t", "type": "trigger", "data": {"triggerType": "form_submission", **data}}


def node(raw: dict) -> WorkflowNode:
    return WorkflowNode.from_dict(raw)


@pytest.mark.unit
class TestTriggerEvent:
    def test_form_submission_shapes(self):
        event = TriggerEvent.form_submission("signup", "sub-1", {"email": "a@b.c"}, correlation_id="corr-1")

        assert event.source_type == "form_submission"
        assert event.source_identifier == "signup"
        assert event.correlation_id == "corr-1"
        assert event.to_trigger() == {"type": "form_submission", "formSlug": "signup", "submissionId": "sub-1"}

        data = event.to_input()
        assert data["submission"] == {"email": "a@b.c"}
        assert data["formSlug"] == "signup"
        assert data["submissionId"] == "sub-1"
        assert data["submittedAt"].endswith("Z")

    def test_generic_event(self):
        event = TriggerEvent(source_type="webhook", source_identifier="hook-1", payload={"a": 1})
        assert event.to_input() == {"a": 1}
        assert event.to_trigger()["sourceIdentifier"] == "hook-1"
        assert len(event.correlation_id) == 32

    def test_trigger_event_type(self):
        assert trigger_event_type("webhook") == "webhook"
        assert trigger_event_type("something-else") == "event"


@pytest.mark.unit
class TestMatching:
    form = TriggerEvent.form_submission("signup", "s1", {})

    @pytest.mark.parametrize("data", [
        {"formSlug": "signup"},
        {"formSlug": "*"},
        {},
        {"formId": "signup", "formSlug": "other"},
    ])
    def test_form_trigger_matches(self, data):
        assert matches_trigger(node(form_node(**data)), self.form)

    def test_other_form_does_not_match(self):
        assert not matches_trigger(node(form_node(formSlug="contact")), self.form)

    def test_trigger_type_under_config(self):
        raw = {"id": "t", "type": "trigger", "config": {"triggerType": "form_submission", "formSlug": "signup"}}
        assert matches_trigger(node(raw), self.form)

    def test_legacy_form_trigger_node(self):
        assert matches_trigger(node({"id": "t", "type": "form_trigger", "data": {"formSlug": "signup"}}), self.form)
        assert matches_trigger(node({"id": "t", "type": "form_trigger"}), self.form)
        assert not matches_trigger(node({"id": "t", "type": "form_trigger", "data": {"formSlug": "x"}}), self.form)

    def test_non_trigger_node_never_matches(self):
        raw = {"id": "h", "type": "http", "config": {"triggerType": "form_submission", "formSlug": "signup"}}
        assert not matches_trigger(node(raw), self.form)

    def test_trigger_for_other_source_ignores_forms(self):
        raw = {"id": "t", "type": "trigger", "data": {"triggerType": "webhook"}}
        assert not matches_trigger(node(raw), self.form)

    def test_generic_source_identifier(self):
        event = TriggerEvent(source_type="webhook", source_identifier="orders")
        exact = {"id": "t", "type": "trigger", "data": {"triggerType": "webhook", "sourceIdentifier": "orders"}}
        other = {"id": "t", "type": "trigger", "data": {"triggerType": "webhook", "sourceIdentifier": "users"}}
        any_id = {"id": "t", "type": "trigger", "data": {"triggerType": "webhook"}}

        assert matches_trigger(node(exact), event)
        assert not matches_trigger(node(other), event)
        assert matches_trigger(node(any_id), event)

    def test_workflow_matches_any_trigger_node(self):
        canvas = {"nodes": [
            {"id": "a", "type": "trigger", "data": {"triggerType": "webhook"}},
            form_node(formSlug="signup") | {"id": "b"},
            {"id": "c", "type": "log", "config": {}},
        ]}
        assert workflow_matches(canvas, self.form)
        assert not workflow_matches({"nodes": [{"id": "c", "type": "log"}]}, self.form)
        assert not workflow_matches(None, self.form)

    @pytest.mark.parametrize("canvas", [
        {"nodes": [{"type": "trigger", "data": {"triggerType": "form_submission"}}]},
        {"nodes": ["not-a-node"]},
        {"nodes": [{"id": "t", "type": "log", "config": "oops"}]},
        {"nodes": [], "edges": [{"source": "a"}]},
        {"nodes": {"id": "t"}},
    ])
    def test_malformed_canvas_raises(self, canvas):
        with pytest.raises(InvalidCanvasError):
            workflow_matches(canvas, self.form)


@pytest.mark.integration
class TestDispatcher:
    async def _create(self, workflow_service, slug, nodes, edges=(), status=WorkflowStatus.ACTIVE.value):
        return await workflow_service.create_workflow(
            name=slug,
            slug=slug,
            status=status,
            canvas={"nodes": nodes, "edges": [{"source": s, "target": t} for s, t in edges]},
        )

    async def test_form_submission_runs_matching_workflows(self, dispatcher, workflow_service, execution_service):
        await self._create(
            workflow_service,
            "welcome",
            [
                form_node(formSlug="signup"),
                {"id": "greet", "type": "set_variable", "config": {"name": "hello", "value": "{{ submission.name }}"}},
            ],
            [("t", "greet")],
        )
        await self._create(workflow_service, "audit", [form_node(formSlug="*")])
        await self._create(workflow_service, "contact", [form_node(formSlug="contact")])

        accepted = await dispatcher.trigger_workflows_for_form_submission("signup", "sub-9", {"name": "Ada"})
        assert accepted is True
        await dispatcher.join()

        welcome = await execution_service.list_recent("welcome")
        assert len(welcome) == 1
        assert welcome[0].status == "completed"
        assert welcome[0].output["hello"] == "Ada"
        assert welcome[0].trigger == {"type": "form_submission", "formSlug": "signup", "submissionId": "sub-9"}
        assert welcome[0].input["submissionId"] == "sub-9"

        assert len(await execution_service.list_recent("audit")) == 1
        assert await execution_service.list_recent("contact") == []

    async def test_inactive_workflows_are_ignored(self, dispatcher, workflow_service, execution_service):
        await self._create(
            workflow_service, "paused", [form_node(formSlug="signup")], status=WorkflowStatus.INACTIVE.value
        )

        await dispatcher.trigger_workflows_for_form_submission("signup", "s", {})
        await dispatcher.join()

        assert await execution_service.list_recent("paused") == []

    async def test_invalid_canvas_does_not_block_other_workflows(
        self, dispatcher, workflow_service, execution_service, dead_letter_service
    ):
        await self._create(workflow_service, "bad", [{"type": "trigger", "data": {"triggerType": "form_submission"}}])
        await self._create(workflow_service, "good", [form_node(formSlug="contact")])

        await dispatcher.trigger_workflows_for_form_submission("contact", "s-3", {}, correlation_id="corr-7")
        await dispatcher.join()

        runs = await execution_service.list_recent("good")
        assert [run.status for run in runs] == ["completed"]
        assert await execution_service.list_recent("bad") == []

        letters = await dead_letter_service.list_recent()
        assert len(letters) == 1
        assert letters[0].workflow_slug == "bad"
        assert letters[0].correlation_id == "corr-7"
        assert "missing an 'id'" in letters[0].error

    async def test_failed_run_is_dead_lettered(self, dispatcher, workflow_service, dead_letter_service):
        await self._create(
            workflow_service,
            "broken",
            [form_node(formSlug="signup"), {"id": "x", "type": "http", "config": {}}],
            [("t", "x")],
        )

        await dispatcher.trigger_workflows_for_form_submission("signup", "s-2", {"a": 1}, correlation_id="corr-42")
        await dispatcher.join()

        letters = await dead_letter_service.list_recent()
        assert len(letters) == 1
        letter = letters[0]
        assert letter.source_type == TriggerType.FORM_SUBMISSION.value
        assert letter.source_identifier == "signup"
        assert letter.correlation_id == "corr-42"
        assert letter.workflow_slug == "broken"
        assert letter.execution_id is not None
        assert letter.payload["submission"] == {"a": 1}

    async def test_engine_exception_is_dead_lettered(self, dispatcher, workflow_service, dead_letter_service):
        await self._create(workflow_service, "any", [form_node()])

        class ExplodingEngine:
            async def execute(self, **kwargs):
                raise RuntimeError("boom")

        dispatcher.engine = ExplodingEngine()
        await dispatcher.trigger_workflows_for_form_submission("signup", "s", {})
        await dispatcher.join()

        letters = await dead_letter_service.list_recent()
        assert [letter.error for letter in letters] == ["boom"]
        assert letters[0].execution_id is None

    async def test_generic_event_dispatch(self, dispatcher, workflow_service, execution_service):
        await self._create(
            workflow_service,
            "orders",
            [{"id": "t", "type": "trigger", "data": {"triggerType": "webhook", "sourceIdentifier": "orders"}}],
        )

        event = TriggerEvent(source_type="webhook", source_identifier="orders", payload={"id": 7})
        assert await dispatcher.dispatch(event) == 1

        runs = await execution_service.list_recent("orders")
        assert runs[0].input == {"id": 7}
        assert runs[0].trigger["correlationId"] == event.correlation_id

    async def test_full_queue_dead_letters_the_event(
        self, engine, workflow_service, dead_letter_service, settings
    ):
        stopped = TriggerDispatcher(
            engine=engine,
            workflows=workflow_service,
            dead_letters=dead_letter_service,
            settings=settings.model_copy(update={"TRIGGER_QUEUE_SIZE": 1}),
        )

        assert await stopped.trigger_workflows_for_form_submission("signup", "s1", {}) is True
        assert await stopped.trigger_workflows_for_form_submission("signup", "s2", {}, correlation_id="c2") is False
        assert stopped.pending == 1
        assert not stopped.running

        letters = await dead_letter_service.list_recent()
        assert len(letters) == 1
        assert letters[0].error == "Trigger queue full"
        assert letters[0].correlation_id == "c2"
        assert letters[0].payload["submissionId"] == "s2"

    async def test_stop_is_idempotent(self, dispatcher):
        assert dispatcher.running
        await dispatcher.stop()
        await dispatcher.stop()
        assert not dispatcher.running
