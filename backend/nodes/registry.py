"""
Node Handler Registry — maps node type strings to handler instances.

Type strings found in stored canvases are normalized through
``NODE_TYPE_ALIASES`` to a ``NodeKind``; every kind has exactly one handler
class. Unrecognized types resolve to ``NodeKind.UNKNOWN``, whose handler
skips the node instead of failing the run.
"""

from typing import Any, Dict, Optional, Type

import structlog

from nodes.base_node import BaseNode, NodeKind, NodeServices
from nodes.implementations.database_node import DATABASE_NODE_TYPES
from nodes.implementations.email_node import EMAIL_NODE_TYPES
from nodes.implementations.flow_node import FLOW_NODE_TYPES
from nodes.implementations.http_node import HTTP_NODE_TYPES
from nodes.implementations.logic_node import LOGIC_NODE_TYPES
from nodes.implementations.script_node import SCRIPT_NODE_TYPES
from workflow.context import ExecutionContext
from workflow.graph import WorkflowNode

logger = structlog.get_logger(__name__)


class UnknownNode(BaseNode):
    """Placeholder for node types the engine does not know."""

    kind = NodeKind.UNKNOWN
    display_name = "Unknown"
    description = "Skipped: no handler for this node type"

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        logger.warning("Unknown node type, skipping", node_type=node.type, node_id=node.id)
        return {"skipped": True, "reason": f"Unknown node type: {node.type}"}


NODE_HANDLERS: Dict[NodeKind, Type[BaseNode]] = {
    **HTTP_NODE_TYPES,
    **DATABASE_NODE_TYPES,
    **LOGIC_NODE_TYPES,
    **FLOW_NODE_TYPES,
    **SCRIPT_NODE_TYPES,
    **EMAIL_NODE_TYPES,
    NodeKind.UNKNOWN: UnknownNode,
}

NODE_TYPE_ALIASES: Dict[str, NodeKind] = {
    "http": NodeKind.HTTP,
    "http_request": NodeKind.HTTP,
    "api_call": NodeKind.HTTP,
    "mongodb": NodeKind.MONGODB,
    "database": NodeKind.MONGODB,
    "db_query": NodeKind.MONGODB,
    "condition": NodeKind.CONDITION,
    "if": NodeKind.CONDITION,
    "branch": NodeKind.CONDITION,
    "transform": NodeKind.TRANSFORM,
    "data_transform": NodeKind.TRANSFORM,
    "map": NodeKind.TRANSFORM,
    "delay": NodeKind.DELAY,
    "wait": NodeKind.DELAY,
    "log": NodeKind.LOG,
    "debug": NodeKind.LOG,
    "set_variable": NodeKind.SET_VARIABLE,
    "assign": NodeKind.SET_VARIABLE,
    "webhook": NodeKind.WEBHOOK,
    "webhook_call": NodeKind.WEBHOOK,
    "script": NodeKind.SCRIPT,
    "code": NodeKind.SCRIPT,
    "python": NodeKind.SCRIPT,
    "email": NodeKind.EMAIL,
    "send_email": NodeKind.EMAIL,
}


def resolve_kind(node_type: Optional[str]) -> NodeKind:
    """Normalize a stored type string to a handler kind."""
    return NODE_TYPE_ALIASES.get(node_type or "", NodeKind.UNKNOWN)


class NodeRegistry:
    """One handler instance per kind, sharing a ``NodeServices`` bundle."""

    def __init__(self, services: Optional[NodeServices] = None):
        self.services = services or NodeServices()
        self._handlers: Dict[NodeKind, BaseNode] = {
            kind: handler_class(self.services)
            for kind, handler_class in NODE_HANDLERS.items()
        }

    def get(self, node_type: Optional[str]) -> BaseNode:
        """Handler for a node type string; never None."""
        return self._handlers[resolve_kind(node_type)]

    def list_all(self) -> list:
        """List all handler kinds with their accepted type strings."""
        return [
            {
                "kind": kind.value,
                "display_name": handler_class.display_name,
                "description": handler_class.description,
                "aliases": sorted(t for t, k in NODE_TYPE_ALIASES.items() if k is kind),
                "config_schema": handler_class.get_config_schema(),
            }
            for kind, handler_class in NODE_HANDLERS.items()
            if kind is not NodeKind.UNKNOWN
        ]
