"""Tests for individual node handlers."""

import json
from types import SimpleNamespace

import httpx
import pytest

from core.exceptions import NodeConfigurationError
from nodes.base_node import NodeKind
from nodes.registry import NODE_TYPE_ALIASES, NodeRegistry, resolve_kind
from workflow.context import ExecutionContext
from workflow.graph import WorkflowNode


def _ctx(**variables) -> ExecutionContext:
    return ExecutionContext.create("exec_test", "wf", input=variables)


def _node(node_type: str, node_id: str = "n1", **config) -> WorkflowNode:
    return WorkflowNode(id=node_id, type=node_type, config=config)


async def _run(registry: NodeRegistry, node: WorkflowNode, context: ExecutionContext):
    return await registry.get(node.type).run(node, context)


@pytest.fixture
def registry(node_services) -> NodeRegistry:
    return NodeRegistry(node_services)


# ─── Registry ───

@pytest.mark.unit
class TestRegistry:
    def test_every_kind_has_an_alias(self):
        kinds = set(NODE_TYPE_ALIASES.values())
        assert kinds == {k for k in NodeKind if k is not NodeKind.UNKNOWN}

    @pytest.mark.parametrize(
        "alias,kind",
        [
            ("http_request", NodeKind.HTTP),
            ("api_call", NodeKind.HTTP),
            ("db_query", NodeKind.MONGODB),
            ("if", NodeKind.CONDITION),
            ("wait", NodeKind.DELAY),
            ("assign", NodeKind.SET_VARIABLE),
            ("code", NodeKind.SCRIPT),
            ("send_email", NodeKind.EMAIL),
            ("does_not_exist", NodeKind.UNKNOWN),
            (None, NodeKind.UNKNOWN),
        ],
    )
    def test_resolve_kind(self, alias, kind):
        assert resolve_kind(alias) is kind

    async def test_unknown_type_is_skipped(self, registry):
        result = await _run(registry, _node("teleport"), _ctx())
        assert result == {"skipped": True, "reason": "Unknown node type: teleport"}

    def test_list_all(self, registry):
        listed = {entry["kind"]: entry for entry in registry.list_all()}
        assert "unknown" not in listed
        assert "webhook_call" in listed["webhook"]["aliases"]


# ─── HTTP / webhook ───

@pytest.mark.unit
class TestHttpNode:
    async def test_get_with_templated_url(self, registry, http_handler):
        http_handler.func = lambda request: httpx.Response(200, json={"id": 7})
        result = await _run(
            registry,
            _node("http", url="https://api.example.com/users/{{ user.id }}"),
            _ctx(user={"id": 7}),
        )
        assert result == {"status": 200, "statusText": "OK", "ok": True, "data": {"id": 7}}
        request = http_handler.requests[0]
        assert request.method == "GET"
        assert str(request.url) == "https://api.example.com/users/7"
        assert request.headers["content-type"] == "application/json"
        assert request.content == b""

    async def test_post_sends_json_body(self, registry, http_handler):
        http_handler.func = lambda request: httpx.Response(201, text="created")
        result = await _run(
            registry,
            _node(
                "http_request",
                url="https://api.example.com/orders",
                method="post",
                headers={"X-Token": "{{ token }}"},
                body={"sku": "{{ sku }}", "qty": 2},
            ),
            _ctx(token="t-1", sku="A-1"),
        )
        assert result["status"] == 201
        assert result["data"] == "created"
        request = http_handler.requests[0]
        assert request.method == "POST"
        assert request.headers["x-token"] == "t-1"
        assert json.loads(request.content) == {"sku": "A-1", "qty": 2}

    async def test_non_2xx_is_reported_not_raised(self, registry, http_handler):
        http_handler.func = lambda request: httpx.Response(503, json={"error": "down"})
        result = await _run(registry, _node("http", url="https://x.test"), _ctx())
        assert result["ok"] is False
        assert result["status"] == 503

    async def test_transport_error_raises(self, registry, http_handler):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        http_handler.func = refuse
        with pytest.raises(httpx.ConnectError):
            await _run(registry, _node("http", url="https://x.test"), _ctx())

    async def test_missing_url(self, registry):
        with pytest.raises(NodeConfigurationError):
            await _run(registry, _node("http"), _ctx())

    async def test_webhook_defaults_to_post_of_variables(self, registry, http_handler):
        result = await _run(registry, _node("webhook", url="https://hooks.test/in"), _ctx(a=1))
        assert result["ok"] is True
        request = http_handler.requests[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {"a": 1}


# ─── Document store ───

class FakeCursor:
    def __init__(self, docs):
        self.docs = list(docs)

    def limit(self, n):
        self.docs = self.docs[:n]
        return self

    async def to_list(self, length=None):
        return self.docs if length is None else self.docs[:length]


def _matches(doc, query):
    return all(doc.get(k) == v for k, v in query.items())


class FakeCollection:
    """Tiny in-memory stand-in for a motor collection."""

    def __init__(self):
        self.docs: list[dict] = []
        self._next_id = 1

    def _new_id(self):
        value = f"id{self._next_id}"
        self._next_id += 1
        return value

    def find(self, query):
        return FakeCursor(d for d in self.docs if _matches(d, query))

    async def find_one(self, query):
        return next((d for d in self.docs if _matches(d, query)), None)

    async def insert_one(self, doc):
        doc = {"_id": self._new_id(), **doc}
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"], acknowledged=True)

    async def insert_many(self, docs):
        ids = [(await self.insert_one(d)).inserted_id for d in docs]
        return SimpleNamespace(inserted_ids=ids)

    async def _update(self, query, update, many):
        matched = [d for d in self.docs if _matches(d, query)]
        if not many:
            matched = matched[:1]
        for d in matched:
            d.update(update["$set"])
        return SimpleNamespace(matched_count=len(matched), modified_count=len(matched))

    async def update_one(self, query, update):
        return await self._update(query, update, many=False)

    async def update_many(self, query, update):
        return await self._update(query, update, many=True)

    async def _delete(self, query, many):
        matched = [d for d in self.docs if _matches(d, query)]
        if not many:
            matched = matched[:1]
        for d in matched:
            self.docs.remove(d)
        return SimpleNamespace(deleted_count=len(matched))

    async def delete_one(self, query):
        return await self._delete(query, many=False)

    async def delete_many(self, query):
        return await self._delete(query, many=True)

    async def count_documents(self, query):
        return sum(1 for d in self.docs if _matches(d, query))

    def aggregate(self, pipeline):
        query = {}
        for stage in pipeline:
            query.update(stage.get("$match", {}))
        return FakeCursor(d for d in self.docs if _matches(d, query))


class FakeDocumentStore:
    def __init__(self):
        self.collections: dict[str, FakeCollection] = {}

    def collection(self, name):
        return self.collections.setdefault(name, FakeCollection())


@pytest.mark.unit
class TestMongoDBNode:
    @pytest.fixture
    def store(self, node_services):
        node_services.document_store = FakeDocumentStore()
        return node_services.document_store

    async def test_insert_then_find(self, registry, store):
        ctx = _ctx(email="a@example.com")
        inserted = await _run(
            registry,
            _node("mongodb", operation="insertOne", collection="users", data={"email": "{{ email }}"}),
            ctx,
        )
        assert inserted["operation"] == "insertOne"
        assert inserted["insertedId"] == "id1"
        assert inserted["acknowledged"] is True

        found = await _run(
            registry,
            _node("mongodb", operation="find", collection="users", query={"email": "a@example.com"}),
            ctx,
        )
        assert found["count"] == 1
        assert found["results"][0]["email"] == "a@example.com"
        # datetimes come back JSON-safe
        assert isinstance(found["results"][0]["createdAt"], str)

    async def test_find_default_limit(self, registry, store, settings):
        store.collection("items").docs = [{"n": i} for i in range(settings.FIND_DEFAULT_LIMIT + 5)]
        result = await _run(registry, _node("database", collection="items"), _ctx())
        assert result["count"] == settings.FIND_DEFAULT_LIMIT

    async def test_update_delete_count(self, registry, store):
        store.collection("c").docs = [{"k": 1}, {"k": 1}, {"k": 2}]
        updated = await _run(
            registry,
            _node("mongodb", operation="updateMany", collection="c", query={"k": 1}, data={"seen": True}),
            _ctx(),
        )
        assert updated == {"operation": "updateMany", "matchedCount": 2, "modifiedCount": 2}

        deleted = await _run(
            registry, _node("mongodb", operation="deleteOne", collection="c", query={"k": 1}), _ctx()
        )
        assert deleted == {"operation": "deleteOne", "deletedCount": 1}

        counted = await _run(registry, _node("mongodb", operation="count", collection="c"), _ctx())
        assert counted == {"operation": "count", "count": 2}

    async def test_find_one_missing(self, registry, store):
        result = await _run(
            registry, _node("mongodb", operation="findOne", collection="c", query={"x": 1}), _ctx()
        )
        assert result == {"operation": "findOne", "found": False, "document": None}

    async def test_unknown_operation(self, registry, store):
        with pytest.raises(NodeConfigurationError):
            await _run(registry, _node("mongodb", operation="drop", collection="c"), _ctx())

    async def test_missing_collection(self, registry, store):
        with pytest.raises(NodeConfigurationError):
            await _run(registry, _node("mongodb", operation="find"), _ctx())

    async def test_no_store_configured(self, registry):
        with pytest.raises(NodeConfigurationError, match="MONGO_URL"):
            await _run(registry, _node("mongodb", collection="c"), _ctx())


# ─── Condition / transform / set_variable ───

@pytest.mark.unit
class TestConditionNode:
    @pytest.mark.parametrize(
        "operator,field_value,value,expected",
        [
            ("equals", "200", "200", True),
            ("==", 200, "200", True),
            ("not_equals", "a", "b", True),
            ("contains", "hello world", "world", True),
            ("not_contains", "hello", "z", True),
            (">", 10, "9", True),
            ("less_than", "3", "4", True),
            (">=", 5, 5, True),
            ("<=", "abc", "1", False),
            ("starts_with", "prefix-x", "prefix", True),
            ("ends_with", "file.csv", ".csv", True),
            ("regex", "order-123", r"^order-\d+$", True),
            ("equals", True, "true", True),
        ],
    )
    async def test_operators(self, registry, operator, field_value, value, expected):
        result = await _run(
            registry,
            _node("condition", field="subject", operator=operator, value=value),
            _ctx(subject=field_value),
        )
        assert result["result"] is expected
        assert result["branch"] == ("true" if expected else "false")

    @pytest.mark.parametrize("empty", ["", None, [], {}])
    async def test_is_empty(self, registry, empty):
        result = await _run(registry, _node("condition", field="v", operator="is_empty"), _ctx(v=empty))
        assert result["result"] is True

    async def test_missing_field_is_empty(self, registry):
        result = await _run(registry, _node("condition", field="nope", operator="is_not_empty"), _ctx())
        assert result["result"] is False
        assert result["fieldValue"] is None

    @pytest.mark.parametrize("operator", ["less_than", "greater_than", "<=", ">="])
    async def test_ordering_on_missing_field_is_false(self, registry, operator):
        result = await _run(
            registry,
            _node("condition", field="order.amount", operator=operator, value=100),
            _ctx(order={"id": 1}),
        )
        assert result["result"] is False
        assert result["fieldValue"] is None

    async def test_ordering_on_null_field_compares_as_zero(self, registry):
        result = await _run(
            registry,
            _node("condition", field="amount", operator="less_than", value=100),
            _ctx(amount=None),
        )
        assert result["result"] is True

    async def test_unknown_operator_is_false(self, registry):
        result = await _run(registry, _node("condition", field="v", operator="~~", value="1"), _ctx(v=1))
        assert result["result"] is False

    async def test_result_shape(self, registry):
        result = await _run(
            registry,
            _node("condition", field="order.total", operator="greater_than", value=100),
            _ctx(order={"total": 150}),
        )
        assert result == {
            "condition": {"field": "order.total", "operator": "greater_than", "value": "100"},
            "fieldValue": 150,
            "result": True,
            "branch": "true",
        }


@pytest.mark.unit
class TestTransformNode:
    async def test_map(self, registry):
        result = await _run(
            registry,
            _node("transform", transformType="map", input="user", mapping={"mail": "email", "city": "address.city"}),
            _ctx(user={"email": "a@b.c", "address": {"city": "Sofia"}}),
        )
        assert result == {"mail": "a@b.c", "city": "Sofia"}

    async def test_filter(self, registry):
        result = await _run(
            registry,
            _node("transform", mode="filter", input="items", filterField="status", filterValue="paid"),
            _ctx(items=[{"status": "paid", "id": 1}, {"status": "open", "id": 2}]),
        )
        assert result == [{"status": "paid", "id": 1}]

    async def test_pick_and_merge(self, registry):
        ctx = _ctx(a={"x": 1, "y": 2}, b={"z": 3})
        picked = await _run(registry, _node("transform", mode="pick", input="a", fields=["x"]), ctx)
        assert picked == {"x": 1}
        merged = await _run(registry, _node("transform", mode="merge", sources=["a", "b"]), ctx)
        assert merged == {"x": 1, "y": 2, "z": 3}

    async def test_template(self, registry):
        result = await _run(
            registry, _node("data_transform", mode="template", template="Hi {{ name }}"), _ctx(name="Ana")
        )
        assert result == "Hi Ana"


@pytest.mark.unit
class TestSetVariableNode:
    async def test_sets_templated_value(self, registry):
        ctx = _ctx(first="Ada")
        result = await _run(registry, _node("set_variable", name="greeting", value="Hello {{ first }}"), ctx)
        assert result == {"variable": "greeting", "value": "Hello Ada"}
        assert ctx.variables["greeting"] == "Hello Ada"


# ─── Delay / log ───

@pytest.mark.unit
class TestDelayNode:
    async def test_units(self, registry, fake_sleep):
        result = await _run(registry, _node("delay", duration=2, unit="seconds"), _ctx())
        assert result == {"delayed": True, "requestedMs": 2000, "actualMs": 2000}
        assert fake_sleep.calls == [2.0]

    async def test_default_is_one_second(self, registry, fake_sleep):
        result = await _run(registry, _node("wait"), _ctx())
        assert result["actualMs"] == 1000
        assert fake_sleep.calls == [1.0]

    async def test_clamped_to_ceiling(self, registry, fake_sleep, settings):
        result = await _run(registry, _node("delay", duration=2, unit="hours"), _ctx())
        assert result["requestedMs"] == 7_200_000
        assert result["actualMs"] == settings.DELAY_MAX_SECONDS * 1000
        assert fake_sleep.calls == [settings.DELAY_MAX_SECONDS]

    async def test_negative_becomes_zero(self, registry, fake_sleep):
        result = await _run(registry, _node("delay", delay=-50), _ctx())
        assert result["actualMs"] == 0

    async def test_unknown_unit_treated_as_milliseconds(self, registry, fake_sleep):
        result = await _run(registry, _node("delay", duration=250, unit="fortnights"), _ctx())
        assert result["actualMs"] == 250

    async def test_templated_duration(self, registry, fake_sleep):
        result = await _run(registry, _node("delay", duration="{{ wait_ms }}"), _ctx(wait_ms=30))
        assert result["actualMs"] == 30

    async def test_non_numeric_duration(self, registry):
        with pytest.raises(NodeConfigurationError):
            await _run(registry, _node("delay", duration="soon"), _ctx())


@pytest.mark.unit
class TestLogNode:
    async def test_writes_run_log(self, registry):
        ctx = _ctx(order={"id": 9})
        result = await _run(
            registry, _node("log", message="Order {{ order.id }} received", level="warning"), ctx
        )
        assert result == {"logged": True, "message": "Order 9 received", "level": "warn"}
        entry = ctx.logs_as_dicts()[-1]
        assert entry["message"] == "Order 9 received"
        assert entry["level"] == "warn"
        assert entry["nodeId"] == "n1"


# ─── Script ───

@pytest.mark.unit
class TestScriptNode:
    async def test_result_and_console(self, registry):
        ctx = _ctx(values=[1, 2, 3])
        result = await _run(
            registry,
            _node("script", code="console.log('summing')\nresult = sum(input['values'])"),
            ctx,
        )
        assert result == {"executed": True, "result": 6}
        assert ctx.logs_as_dicts()[-1]["message"] == "[script] summing"

    async def test_script_cannot_mutate_run_state(self, registry):
        ctx = _ctx(values=[1])
        await _run(registry, _node("code", code="variables['values'][0] = 99"), ctx)
        assert ctx.variables["values"] == [1]
        assert ctx.input["values"] == [1]

    async def test_empty_code(self, registry):
        result = await _run(registry, _node("script", code="   "), _ctx())
        assert result == {"executed": False, "reason": "No code provided"}

    async def test_errors_are_data(self, registry):
        result = await _run(registry, _node("python", code="import os"), _ctx())
        assert result["executed"] is False
        assert "Imports are not allowed" in result["error"]


# ─── Email ───

@pytest.mark.unit
class TestEmailNode:
    async def test_logs_when_unconfigured(self, registry):
        result = await _run(
            registry, _node("email", to="{{ email }}", subject="Welcome", body="Hi"), _ctx(email="u@x.io")
        )
        assert result == {"logged": True, "to": "u@x.io", "subject": "Welcome", "body": "Hi"}

    async def test_sends_through_service(self, registry, node_services, http_handler):
        node_services.settings = node_services.settings.model_copy(
            update={"EMAIL_SERVICE_URL": "https://mail.test/send", "EMAIL_SERVICE_API_KEY": "k"}
        )
        result = await _run(registry, _node("send_email", to="u@x.io", subject="S", body="B"), _ctx())
        assert result == {"sent": True, "to": "u@x.io", "subject": "S"}
        request = http_handler.requests[0]
        assert request.headers["authorization"] == "Bearer k"
        assert json.loads(request.content) == {"to": "u@x.io", "subject": "S", "body": "B"}

    async def test_service_failure_is_reported(self, registry, node_services, http_handler):
        node_services.settings = node_services.settings.model_copy(
            update={"EMAIL_SERVICE_URL": "https://mail.test/send"}
        )
        http_handler.func = lambda request: httpx.Response(500)
        result = await _run(registry, _node("email", to="u@x.io", subject="S"), _ctx())
        assert result["sent"] is False
        assert "500" in result["error"]
