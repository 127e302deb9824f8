"""Per-run execution context: variable store and run log buffer."""

import copy
from dataclasses import dataclass, field
from typing import Any, Optional

from core.constants import LogLevel
from core.utils import isoformat, utcnow


@dataclass
class LogEntry:
    """One entry of a run's log buffer."""

    timestamp: str
    level: str
    message: str
    node_id: Optional[str] = None
    data: Any = None

    def to_dict(self) -> dict:
        entry = {"timestamp": self.timestamp, "level": self.level, "message": self.message}
        if self.node_id is not None:
            entry["nodeId"] = self.node_id
        if self.data is not None:
            entry["data"] = self.data
        return entry


@dataclass
class ExecutionContext:
    """State owned by exactly one workflow run.

    ``variables`` starts as a copy of the input and gains one entry per
    completed node under both ``<node_id>`` and ``<node_id>_output``.
    Nothing here is shared between runs.
    """

    execution_id: str
    workflow_slug: str
    workflow_id: Optional[str] = None
    input: dict[str, Any] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)
    logs: list[LogEntry] = field(default_factory=list)
    trigger: dict[str, Any] = field(default_factory=dict)
    started_at: Any = field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        execution_id: str,
        workflow_slug: str,
        input: Optional[dict] = None,
        workflow_id: Optional[str] = None,
        trigger: Optional[dict] = None,
    ) -> "ExecutionContext":
        """Build a fresh context; the caller's input is deep-copied twice."""
        snapshot = copy.deepcopy(input or {})
        return cls(
            execution_id=execution_id,
            workflow_slug=workflow_slug,
            workflow_id=workflow_id,
            input=snapshot,
            variables=copy.deepcopy(snapshot),
            trigger=dict(trigger or {}),
        )

    def set_variable(self, key: str, value: Any) -> None:
        """Set a workflow variable."""
        self.variables[key] = value

    def get_variable(self, key: str, default: Any = None) -> Any:
        """Get a workflow variable."""
        return self.variables.get(key, default)

    def record_node_result(self, node_id: str, result: Any) -> None:
        """Store a node's result where later nodes can template against it."""
        self.variables[node_id] = result
        self.variables[f"{node_id}_output"] = result

    def log(
        self,
        level: LogLevel | str,
        message: str,
        node_id: Optional[str] = None,
        data: Any = None,
    ) -> LogEntry:
        """Append an entry to the run log buffer."""
        entry = LogEntry(
            timestamp=isoformat(utcnow()),
            level=level.value if isinstance(level, LogLevel) else str(level),
            message=message,
            node_id=node_id,
            data=data,
        )
        self.logs.append(entry)
        return entry

    def logs_as_dicts(self) -> list[dict]:
        return [entry.to_dict() for entry in self.logs]

    def snapshot_variables(self) -> dict:
        """Deep copy of the variable store, used as the run's output."""
        return copy.deepcopy(self.variables)
