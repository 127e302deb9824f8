"""Tests for topological ordering of workflow nodes."""

import pytest

from core.exceptions import CyclicGraphError
from workflow import scheduler
from workflow.graph import WorkflowEdge, WorkflowGraph, WorkflowNode


def _nodes(*ids):
    return [WorkflowNode(id=i, type="log") for i in ids]


def _edges(*pairs):
    return [WorkflowEdge(source=s, target=t) for s, t in pairs]


def _ids(nodes):
    return [n.id for n in nodes]


@pytest.mark.unit
class TestOrder:
    def test_linear_chain(self):
        ordered = scheduler.order(_nodes("c", "b", "a"), _edges(("a", "b"), ("b", "c")))
        assert _ids(ordered) == ["a", "b", "c"]

    def test_declaration_order_breaks_ties(self):
        ordered = scheduler.order(_nodes("x", "y", "z"), [])
        assert _ids(ordered) == ["x", "y", "z"]

    def test_diamond_respects_every_edge(self):
        edges = _edges(("a", "b"), ("a", "c"), ("b", "d"), ("c", "d"))
        ordered = _ids(scheduler.order(_nodes("d", "c", "b", "a"), edges))
        for edge in edges:
            assert ordered.index(edge.source) < ordered.index(edge.target)
        assert ordered[0] == "a" and ordered[-1] == "d"

    def test_edges_to_unknown_nodes_ignored(self):
        ordered = scheduler.order(_nodes("a", "b"), _edges(("ghost", "a"), ("a", "b"), ("b", "nowhere")))
        assert _ids(ordered) == ["a", "b"]

    def test_cycle_raises_in_strict_mode(self):
        with pytest.raises(CyclicGraphError) as exc_info:
            scheduler.order(_nodes("a", "b", "c"), _edges(("a", "b"), ("b", "c"), ("c", "b")))
        assert exc_info.value.node_ids == ["b", "c"]
        assert exc_info.value.code == "CYCLIC_GRAPH"

    def test_cycle_members_and_descendants_omitted_when_lenient(self):
        nodes = _nodes("start", "a", "b", "after")
        edges = _edges(("start", "a"), ("a", "b"), ("b", "a"), ("b", "after"))
        ordered = scheduler.order(nodes, edges, strict=False)
        assert _ids(ordered) == ["start"]

    def test_empty_graph(self):
        assert scheduler.order([], []) == []


@pytest.mark.unit
class TestGraphParsing:
    def test_legacy_data_shape(self):
        graph = WorkflowGraph.from_canvas({
            "nodes": [
                {
                    "id": "n1",
                    "data": {
                        "type": "http",
                        "label": "Fetch",
                        "config": {"url": "https://example.com"},
                        "continueOnError": True,
                    },
                },
                {"id": "n2", "type": "log", "data": {"message": "hi"}},
            ],
            "edges": [{"source": "n1", "target": "n2"}],
        })
        first, second = graph.nodes
        assert first.type == "http"
        assert first.label == "Fetch"
        assert first.config == {"url": "https://example.com"}
        assert first.continue_on_error is True
        # config falls back to data itself
        assert second.config == {"message": "hi"}
        assert graph.edges[0].target == "n2"

    def test_trigger_detection(self):
        graph = WorkflowGraph.from_canvas({
            "nodes": [
                {"id": "t1", "type": "form_trigger"},
                {"id": "t2", "type": "custom", "data": {"type": "trigger"}},
                {"id": "n", "type": "log"},
            ],
        })
        assert [n.id for n in graph.trigger_nodes] == ["t1", "t2"]

    def test_missing_canvas(self):
        graph = WorkflowGraph.from_canvas(None)
        assert graph.nodes == [] and graph.edges == []
