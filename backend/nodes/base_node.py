"""
Base node interface for all workflow node handlers.

Every node type (http, condition, delay, ...) inherits from BaseNode and
implements ``execute(node, context)``. Handlers raise on failure; the
executor decides whether a failure aborts the run.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import structlog

from app.config import Settings, get_settings
from workflow.context import ExecutionContext
from workflow.graph import WorkflowNode
from workflow.templating import TemplateResolver

logger = structlog.get_logger(__name__)


class NodeKind(str, Enum):
    """Closed set of node handlers the executor can dispatch to."""

    HTTP = "http"
    MONGODB = "mongodb"
    CONDITION = "condition"
    TRANSFORM = "transform"
    DELAY = "delay"
    LOG = "log"
    SET_VARIABLE = "set_variable"
    WEBHOOK = "webhook"
    SCRIPT = "script"
    EMAIL = "email"
    UNKNOWN = "unknown"


@dataclass
class NodeServices:
    """External collaborators handed to every node handler.

    Attributes:
        settings: Application settings
        http_transport: Optional httpx transport (tests pass a MockTransport)
        document_store: Store backing mongodb nodes; None when unconfigured
        sleep: Coroutine used by delay nodes to suspend the run
    """

    settings: Settings = field(default_factory=get_settings)
    http_transport: Optional[httpx.AsyncBaseTransport] = None
    document_store: Any = None
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    def http_client(self) -> httpx.AsyncClient:
        """New HTTP client honoring the configured transport and timeout."""
        return httpx.AsyncClient(
            transport=self.http_transport,
            timeout=self.settings.HTTP_TIMEOUT_SECONDS,
            follow_redirects=True,
        )


class BaseNode(ABC):
    """
    Abstract base class for all node handlers.

    Subclasses must implement:
    - execute(node, context) -> Any
    - kind (class attribute)
    """

    kind: NodeKind = NodeKind.UNKNOWN
    display_name: str = "Base Node"
    description: str = "Abstract base node"

    def __init__(self, services: Optional[NodeServices] = None):
        self.services = services or NodeServices()

    @property
    def settings(self) -> Settings:
        return self.services.settings

    @abstractmethod
    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        """
        Run the node.

        Args:
            node: Node definition, with its raw (unresolved) config
            context: Execution context of the current run

        Returns:
            The node's result, stored into the variable store by the executor
        """
        pass

    async def run(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        """
        Run the node with timing and structured logging.

        This is the entry point called by the workflow engine. Errors are
        logged and re-raised.
        """
        start = time.monotonic()
        log = logger.bind(
            execution_id=context.execution_id,
            node_id=node.id,
            node_type=node.type,
        )
        try:
            result = await self.execute(node, context)
        except Exception as e:
            log.warning(
                "Node failed",
                error=str(e),
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            raise

        log.debug("Node completed", duration_ms=round((time.monotonic() - start) * 1000, 2))
        return result

    # ─── Helpers ───────────────────────────────────────────

    @staticmethod
    def resolve(value: Any, context: ExecutionContext) -> Any:
        """Resolve ``{{ path }}`` tokens against the run's variables."""
        return TemplateResolver.resolve(value, context.variables)

    @staticmethod
    def lookup(obj: Any, path: str, default: Any = None) -> Any:
        return TemplateResolver.lookup(obj, path, default)

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        """
        Return JSON schema for node configuration.

        Override in subclasses to define expected config shape.
        """
        return {"type": "object", "properties": {}}
