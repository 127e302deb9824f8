"""Workflow graph model parsed from a stored canvas.

A canvas is ``{"nodes": [...], "edges": [...]}``. Nodes come in two shapes:

    {"id": "n1", "type": "http", "config": {"url": "..."}}

or the editor's legacy shape, where everything lives under ``data``:

    {"id": "n1", "type": "custom", "data": {"type": "http", "config": {...},
                                            "continueOnError": true}}
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from core.constants import TRIGGER_NODE_TYPES
from core.exceptions import InvalidCanvasError


@dataclass
class WorkflowNode:
    """One node of a workflow graph."""

    id: str
    type: str
    config: dict[str, Any] = field(default_factory=dict)
    label: Optional[str] = None
    continue_on_error: bool = False
    timeout: Optional[float] = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_trigger(self) -> bool:
        """Trigger nodes describe how a run starts and are never executed."""
        return self.type in TRIGGER_NODE_TYPES or self.data.get("type") == "trigger"

    @classmethod
    def from_dict(cls, raw: dict) -> "WorkflowNode":
        """Parse one canvas node.

        Raises:
            InvalidCanvasError: If the node is not a dict with an ``id``
        """
        if not isinstance(raw, dict):
            raise InvalidCanvasError(f"Canvas node must be an object, got {type(raw).__name__}")
        if raw.get("id") in (None, ""):
            raise InvalidCanvasError("Canvas node is missing an 'id'")

        data = raw.get("data") or {}
        if not isinstance(data, dict):
            raise InvalidCanvasError(f"Node '{raw['id']}' has a non-object 'data'")
        node_type = raw.get("type") or data.get("type") or ""

        config = raw.get("config")
        if config is None:
            config = data.get("config")
        if config is None:
            config = data

        continue_on_error = raw.get("continueOnError")
        if continue_on_error is None:
            continue_on_error = data.get("continueOnError", False)

        if not isinstance(config, dict):
            raise InvalidCanvasError(f"Node '{raw['id']}' has a non-object 'config'")

        timeout = raw.get("timeout", data.get("timeout"))
        if timeout is not None:
            try:
                timeout = float(timeout)
            except (TypeError, ValueError):
                raise InvalidCanvasError(f"Node '{raw['id']}' has a non-numeric 'timeout'")

        return cls(
            id=str(raw["id"]),
            type=str(node_type),
            config=dict(config),
            label=raw.get("label") or data.get("label"),
            continue_on_error=bool(continue_on_error),
            timeout=timeout,
            data=dict(data),
        )


@dataclass
class WorkflowEdge:
    """Directed dependency: ``target`` runs after ``source``."""

    source: str
    target: str

    @classmethod
    def from_dict(cls, raw: dict) -> "WorkflowEdge":
        if not isinstance(raw, dict):
            raise InvalidCanvasError(f"Canvas edge must be an object, got {type(raw).__name__}")
        if raw.get("source") in (None, "") or raw.get("target") in (None, ""):
            raise InvalidCanvasError("Canvas edge needs both 'source' and 'target'")
        return cls(source=str(raw["source"]), target=str(raw["target"]))


@dataclass
class WorkflowGraph:
    """Nodes and edges of a stored workflow."""

    nodes: list[WorkflowNode] = field(default_factory=list)
    edges: list[WorkflowEdge] = field(default_factory=list)

    @classmethod
    def from_canvas(cls, canvas: Optional[dict]) -> "WorkflowGraph":
        """Parse a stored canvas; a missing canvas is an empty graph.

        Raises:
            InvalidCanvasError: If the canvas, a node or an edge is malformed
        """
        canvas = canvas or {}
        if not isinstance(canvas, dict):
            raise InvalidCanvasError("Canvas must be an object")

        nodes = canvas.get("nodes") or []
        edges = canvas.get("edges") or []
        if not isinstance(nodes, list) or not isinstance(edges, list):
            raise InvalidCanvasError("Canvas 'nodes' and 'edges' must be lists")

        return cls(
            nodes=[WorkflowNode.from_dict(n) for n in nodes],
            edges=[WorkflowEdge.from_dict(e) for e in edges],
        )

    @property
    def trigger_nodes(self) -> list[WorkflowNode]:
        return [n for n in self.nodes if n.is_trigger]
