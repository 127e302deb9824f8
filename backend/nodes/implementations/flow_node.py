"""Flow-control nodes: delay and log."""

from typing import Any

import structlog

from core.constants import LogLevel
from core.exceptions import NodeConfigurationError
from nodes.base_node import BaseNode, NodeKind
from workflow.context import ExecutionContext
from workflow.graph import WorkflowNode

logger = structlog.get_logger(__name__)

UNIT_MILLISECONDS = {
    "ms": 1,
    "millisecond": 1,
    "milliseconds": 1,
    "s": 1_000,
    "second": 1_000,
    "seconds": 1_000,
    "m": 60_000,
    "minute": 60_000,
    "minutes": 60_000,
    "h": 3_600_000,
    "hour": 3_600_000,
    "hours": 3_600_000,
}


def _number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a duration")
    if isinstance(value, (int, float)):
        return float(value)
    return float(str(value).strip())


def _ms(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


class DelayNode(BaseNode):
    """Suspend the run for a bounded time.

    Config:
        duration / delay: Amount to wait (default: 1000)
        unit: ms | seconds | minutes | hours (default: milliseconds)

    The wait is clamped to ``DELAY_MAX_SECONDS`` (5 minutes by default).
    """

    kind = NodeKind.DELAY
    display_name = "Delay"
    description = "Wait before continuing"

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        config = node.config
        raw = config.get("duration")
        if raw is None:
            raw = config.get("delay")
        if raw is None:
            raw = 1000

        try:
            duration = _number(self.resolve(raw, context))
        except (TypeError, ValueError):
            raise NodeConfigurationError(f"Delay duration is not a number: {raw!r}")

        unit = str(config.get("unit") or "milliseconds").lower()
        factor = UNIT_MILLISECONDS.get(unit)
        if factor is None:
            logger.warning("Unknown delay unit, using milliseconds", unit=unit, node_id=node.id)
            factor = 1

        requested_ms = max(0.0, duration * factor)
        actual_ms = min(requested_ms, self.settings.DELAY_MAX_SECONDS * 1000)

        logger.info(
            "Delaying run",
            node_id=node.id,
            requested_ms=requested_ms,
            actual_ms=actual_ms,
        )
        await self.services.sleep(actual_ms / 1000)

        return {"delayed": True, "requestedMs": _ms(requested_ms), "actualMs": _ms(actual_ms)}


_LOG_LEVELS = {
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "warn": LogLevel.WARN,
    "warning": LogLevel.WARN,
    "error": LogLevel.ERROR,
}


class LogNode(BaseNode):
    """Write a message into the run log and the process log.

    Config:
        message: Message text (templated)
        level: debug | info | warn | error (default: info)
        data: Optional structured data attached to the entry (templated)
    """

    kind = NodeKind.LOG
    display_name = "Log"
    description = "Record a message in the execution log"

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        config = node.config
        message = self.resolve(str(config.get("message") or ""), context)
        level = _LOG_LEVELS.get(str(config.get("level") or "info").lower(), LogLevel.INFO)
        data = self.resolve(config["data"], context) if config.get("data") is not None else None

        context.log(level, message, node_id=node.id, data=data)

        emit = {
            LogLevel.DEBUG: logger.debug,
            LogLevel.WARN: logger.warning,
            LogLevel.ERROR: logger.error,
        }.get(level, logger.info)
        emit(
            "Workflow log",
            message=message,
            execution_id=context.execution_id,
            node_id=node.id,
            data=data,
        )

        return {"logged": True, "message": message, "level": level.value}


FLOW_NODE_TYPES = {
    NodeKind.DELAY: DelayNode,
    NodeKind.LOG: LogNode,
}
