"""Topological ordering of workflow nodes (Kahn's algorithm)."""

from collections import deque
from typing import Sequence

from core.exceptions import CyclicGraphError
from workflow.graph import WorkflowEdge, WorkflowNode


def order(
    nodes: Sequence[WorkflowNode],
    edges: Sequence[WorkflowEdge],
    strict: bool = True,
) -> list[WorkflowNode]:
    """Return nodes so that every edge's source precedes its target.

    Ties are broken by declaration order. Edges naming an unknown node are
    ignored.

    Args:
        nodes: Graph nodes in declaration order
        edges: Directed dependencies
        strict: Raise on a cycle; when False, cycle members and everything
            reachable only through them are left out of the result

    Raises:
        CyclicGraphError: If ``strict`` and some nodes can never be scheduled
    """
    by_id = {node.id: node for node in nodes}
    in_degree = {node.id: 0 for node in nodes}
    adjacency: dict[str, list[str]] = {node.id: [] for node in nodes}

    for edge in edges:
        if edge.source in by_id and edge.target in by_id:
            adjacency[edge.source].append(edge.target)
            in_degree[edge.target] += 1

    queue = deque(node.id for node in nodes if in_degree[node.id] == 0)
    ordered: list[WorkflowNode] = []

    while queue:
        node_id = queue.popleft()
        ordered.append(by_id[node_id])
        for target in adjacency[node_id]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                queue.append(target)

    if strict and len(ordered) < len(by_id):
        scheduled = {node.id for node in ordered}
        raise CyclicGraphError([node.id for node in nodes if node.id not in scheduled])

    return ordered
