"""Constants and enums for the workflow execution engine."""

from enum import Enum


class ExecutionStatus(str, Enum):
    """Workflow execution status."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobStatus(str, Enum):
    """Scheduled job status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggerType(str, Enum):
    """What started a workflow execution."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    WEBHOOK = "webhook"
    API = "api"
    FORM_SUBMISSION = "form_submission"
    EVENT = "event"


class WorkflowStatus(str, Enum):
    """Workflow status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PAUSED = "paused"


class LogLevel(str, Enum):
    """Log level for execution logs."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class CyclePolicy(str, Enum):
    """How the executor treats a graph that contains a cycle."""

    ERROR = "error"
    OMIT = "omit"


# Node types that only mark how a workflow is started; the executor skips them.
TRIGGER_NODE_TYPES = frozenset({
    "trigger",
    "form_trigger",
    "formSubmissionTrigger",
    "scheduled_trigger",
    "webhook_trigger",
})
