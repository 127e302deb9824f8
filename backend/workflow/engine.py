"""Workflow Execution Engine — runs a stored node/edge graph once.

Given a workflow slug and an input payload, the engine:

- creates a durable execution record in ``running`` status
- loads the graph and orders its nodes topologically
- skips trigger nodes, dispatches every other node to its handler
- stores each node's result under ``variables[node_id]`` and
  ``variables[f"{node_id}_output"]`` for later templates
- persists the run log after every node
- finishes the record as ``completed`` (output = variable snapshot) or
  ``failed`` (error + error code)
- folds the outcome into the workflow's run statistics

Nodes run strictly one after another. A node failure aborts the run unless
the node sets ``continueOnError``. Every node runs under a timeout. The engine
never retries; retry belongs to the job queue.

Canvas example (stored in Workflow.canvas):
{
    "nodes": [
        {"id": "start", "type": "form_trigger", "data": {"formSlug": "signup"}},
        {"id": "fetch", "type": "http", "config": {"url": "https://api.example.com/u/{{ submission.email }}"}},
        {"id": "check", "type": "condition", "config": {"field": "fetch.status", "operator": "==", "value": "200"}},
        {"id": "notify", "type": "email", "config": {"to": "{{ submission.email }}", "subject": "Welcome"}}
    ],
    "edges": [
        {"source": "start", "target": "fetch"},
        {"source": "fetch", "target": "check"},
        {"source": "check", "target": "notify"}
    ]
}
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from app.config import Settings, get_settings
from core.constants import CyclePolicy, LogLevel
from core.exceptions import NodeTimeoutError, NotFoundError, WorkflowEngineError
from core.utils import new_execution_id, to_jsonable, utcnow
from nodes.registry import NodeRegistry
from services.execution_service import ExecutionService
from services.workflow_service import WorkflowService
from workflow import scheduler
from workflow.context import ExecutionContext
from workflow.graph import WorkflowGraph, WorkflowNode

logger = structlog.get_logger(__name__)


# ─── Execution Result ─────────────────────────────────────────

@dataclass
class ExecutionResult:
    """Outcome of one workflow run as seen by its caller."""

    success: bool
    execution_id: str
    output: Optional[dict] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "execution_id": self.execution_id,
            "output": self.output,
            "error": self.error,
            "error_code": self.error_code,
        }


# ─── Workflow Engine ──────────────────────────────────────────

class WorkflowEngine:
    """Executes workflows node by node against durable execution records."""

    def __init__(
        self,
        workflows: WorkflowService,
        executions: ExecutionService,
        registry: Optional[NodeRegistry] = None,
        settings: Optional[Settings] = None,
    ):
        self.workflows = workflows
        self.executions = executions
        self.registry = registry or NodeRegistry()
        self.settings = settings or get_settings()

    async def execute(
        self,
        workflow_id: Optional[str],
        workflow_slug: str,
        trigger: Optional[dict] = None,
        input: Optional[dict] = None,
    ) -> ExecutionResult:
        """Run a workflow once.

        Args:
            workflow_id: Id of the workflow if the caller already knows it
            workflow_slug: Slug used to load the graph
            trigger: Description of what started the run (type, source ids)
            input: Payload; the run works on its own deep copy

        Returns:
            ExecutionResult. Node and lookup failures are reported here,
            not raised.
        """
        trigger = dict(trigger or {"type": "manual"})
        context = ExecutionContext.create(
            execution_id=new_execution_id(),
            workflow_slug=workflow_slug,
            input=input,
            workflow_id=workflow_id,
            trigger=trigger,
        )
        log = logger.bind(execution_id=context.execution_id, workflow_slug=workflow_slug)

        context.log(
            LogLevel.INFO,
            "Workflow execution started",
            data=to_jsonable({"trigger": trigger, "input": context.input}),
        )
        await self.executions.create_execution(
            execution_id=context.execution_id,
            workflow_slug=workflow_slug,
            workflow_id=workflow_id,
            started_at=context.started_at,
            trigger=trigger,
            input=context.input,
            logs=context.logs_as_dicts(),
        )
        log.info("Workflow execution started", trigger_type=trigger.get("type"))

        try:
            output = await self._run(context)
        except WorkflowEngineError as e:
            return await self._fail(context, e.message, e.code)
        except Exception as e:
            log.exception("Unexpected error during workflow execution")
            return await self._fail(context, str(e) or type(e).__name__, "EXECUTION_ERROR")

        context.log(LogLevel.INFO, "Workflow execution completed")
        await self.executions.complete_execution(
            context.execution_id,
            output=output,
            logs=context.logs_as_dicts(),
        )
        await self._record_stats(context, success=True)
        log.info("Workflow execution completed")
        return ExecutionResult(
            success=True,
            execution_id=context.execution_id,
            output=to_jsonable(output),
        )

    async def get_execution(self, execution_id: str):
        """Load a stored execution record."""
        return await self.executions.get_execution(execution_id)

    async def get_recent_executions(self, workflow_slug: str, limit: int = 10):
        """Newest execution records of a workflow."""
        return await self.executions.list_recent(workflow_slug, limit=limit)

    # ─── Internals ─────────────────────────────────────────

    async def _run(self, context: ExecutionContext) -> dict:
        workflow = await self.workflows.get_workflow_by_slug(context.workflow_slug)
        if workflow is None:
            raise NotFoundError(f"Workflow not found: {context.workflow_slug}")

        context.workflow_id = workflow.id
        context.log(LogLevel.INFO, f"Loaded workflow: {workflow.name}")

        graph = WorkflowGraph.from_canvas(workflow.canvas)
        if not graph.nodes:
            context.log(LogLevel.WARN, "Workflow has no nodes")
            return {}

        strict = self.settings.WORKFLOW_CYCLE_POLICY != CyclePolicy.OMIT.value
        ordered = scheduler.order(graph.nodes, graph.edges, strict=strict)
        if len(ordered) < len(graph.nodes):
            ordered_ids = {n.id for n in ordered}
            context.log(
                LogLevel.WARN,
                "Nodes in a cycle were left out of the run",
                data={"omitted": [n.id for n in graph.nodes if n.id not in ordered_ids]},
            )

        context.log(
            LogLevel.INFO,
            f"Executing {len(ordered)} nodes",
            data={"nodeIds": [n.id for n in ordered]},
        )
        await self.executions.update_logs(
            context.execution_id, context.logs_as_dicts(), workflow_id=workflow.id
        )

        for node in ordered:
            await self._run_node(node, context)

        return context.snapshot_variables()

    async def _run_node(self, node: WorkflowNode, context: ExecutionContext) -> None:
        label = node.label or node.type or node.id

        if node.is_trigger:
            context.log(LogLevel.INFO, f"Skipping trigger node: {node.label or node.id}", node_id=node.id)
            return

        handler = self.registry.get(node.type)
        timeout = node.timeout or self.settings.NODE_TIMEOUT_SECONDS
        context.log(
            LogLevel.INFO,
            f"Executing node: {label}",
            node_id=node.id,
            data={"nodeType": node.type},
        )

        try:
            try:
                result = await asyncio.wait_for(handler.run(node, context), timeout=timeout)
            except asyncio.TimeoutError:
                raise NodeTimeoutError(node.id, timeout)
        except Exception as e:
            context.log(
                LogLevel.ERROR,
                f"Node failed: {label}",
                node_id=node.id,
                data={"error": str(e) or type(e).__name__},
            )
            if not node.continue_on_error:
                raise
            logger.warning(
                "Node failed, continuing",
                execution_id=context.execution_id,
                node_id=node.id,
                error=str(e),
            )
        else:
            if result is not None:
                context.record_node_result(node.id, result)
            context.log(
                LogLevel.INFO,
                f"Node completed: {label}",
                node_id=node.id,
                data=to_jsonable({"output": result}),
            )

        await self.executions.update_logs(context.execution_id, context.logs_as_dicts())

    async def _fail(self, context: ExecutionContext, message: str, code: str) -> ExecutionResult:
        context.log(
            LogLevel.ERROR,
            f"Workflow execution failed: {message}",
            data={"error": message, "code": code},
        )
        await self.executions.fail_execution(
            context.execution_id,
            error=message,
            error_code=code,
            logs=context.logs_as_dicts(),
        )
        await self._record_stats(context, success=False)
        logger.warning(
            "Workflow execution failed",
            execution_id=context.execution_id,
            workflow_slug=context.workflow_slug,
            error=message,
            error_code=code,
        )
        return ExecutionResult(
            success=False,
            execution_id=context.execution_id,
            error=message,
            error_code=code,
        )

    async def _record_stats(self, context: ExecutionContext, success: bool) -> None:
        duration_ms = (utcnow() - context.started_at).total_seconds() * 1000
        try:
            await self.workflows.record_run(context.workflow_slug, success, duration_ms)
        except Exception:
            # The run's own record is already final; stats are best effort
            logger.warning(
                "Failed to update workflow statistics",
                execution_id=context.execution_id,
                workflow_slug=context.workflow_slug,
                exc_info=True,
            )


# ─── Singleton ────────────────────────────────────────────────

def build_workflow_engine(session_factory, settings: Optional[Settings] = None) -> WorkflowEngine:
    """Wire an engine to a session factory and the configured node services."""
    from nodes.base_node import NodeServices
    from nodes.document_store import MotorDocumentStore

    settings = settings or get_settings()
    services = NodeServices(
        settings=settings,
        document_store=MotorDocumentStore.from_settings(settings),
    )
    return WorkflowEngine(
        workflows=WorkflowService(session_factory),
        executions=ExecutionService(session_factory),
        registry=NodeRegistry(services),
        settings=settings,
    )


_engine: Optional[WorkflowEngine] = None


def get_workflow_engine() -> WorkflowEngine:
    """Get or create the process-wide workflow engine."""
    global _engine
    if _engine is None:
        from db.database import AsyncSessionLocal

        _engine = build_workflow_engine(AsyncSessionLocal)
    return _engine
