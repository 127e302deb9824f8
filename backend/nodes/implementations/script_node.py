"""Script node: user code run in the restricted interpreter.

Script failures never fail the run. They come back as data
(``{"executed": False, "error": ...}``) so a workflow can branch on them.
A script that outlives its node timeout is stopped and fails the node.
"""

import asyncio
import copy
from typing import Any

import structlog

from nodes.base_node import BaseNode, NodeKind
from nodes.sandbox import ScriptInterpreter
from workflow.context import ExecutionContext
from workflow.graph import WorkflowNode

logger = structlog.get_logger(__name__)


class ScriptNode(BaseNode):
    """Run a small script against copies of the run's input and variables.

    Config:
        code / script: Script source (see ``nodes.sandbox`` for the allowed subset)

    The script sees ``input``, ``variables`` and ``console``; whatever it
    binds to ``result`` (or returns, or evaluates last) becomes the output.
    """

    kind = NodeKind.SCRIPT
    display_name = "Script"
    description = "Run a sandboxed script"

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        config = node.config
        code = config.get("code") or config.get("script") or ""
        if not str(code).strip():
            return {"executed": False, "reason": "No code provided"}

        names = {
            "input": copy.deepcopy(context.input),
            "variables": copy.deepcopy(context.variables),
        }

        interpreter = ScriptInterpreter(names)
        try:
            # Run in a thread; a cancelled wait stops the script at its next statement
            loop = asyncio.get_running_loop()
            outcome = await loop.run_in_executor(None, interpreter.run, str(code))
        except asyncio.CancelledError:
            interpreter.cancel()
            raise
        except Exception as e:
            logger.warning(
                "Script execution failed",
                execution_id=context.execution_id,
                node_id=node.id,
                error=str(e),
            )
            return {"executed": False, "error": str(e) or "Script execution failed"}

        for level, message in outcome.console:
            context.log(level, f"[script] {message}", node_id=node.id)

        return {"executed": True, "result": outcome.result}


SCRIPT_NODE_TYPES = {
    NodeKind.SCRIPT: ScriptNode,
}
