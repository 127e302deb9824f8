"""Custom exceptions for the workflow execution engine."""

from typing import Optional


class WorkflowEngineError(Exception):
    """Base exception for the workflow execution engine."""

    def __init__(self, message: str, status_code: int = 500, code: str = "ENGINE_ERROR"):
        """Initialize exception with message, status code and error code.

        Args:
            message: Exception message
            status_code: HTTP status code
            code: Machine-readable error code stored on failed executions
        """
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(self.message)


class NotFoundError(WorkflowEngineError):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404, "NOT_FOUND")


class ConflictError(WorkflowEngineError):
    """Resource conflict exception."""

    def __init__(self, message: str = "Resource conflict"):
        """Initialize ConflictError with 409 status code."""
        super().__init__(message, 409, "CONFLICT")


class NodeConfigurationError(WorkflowEngineError):
    """A node's configuration is missing or invalid."""

    def __init__(self, message: str = "Invalid node configuration"):
        super().__init__(message, 422, "NODE_CONFIGURATION")


class CyclicGraphError(WorkflowEngineError):
    """The workflow graph contains a cycle."""

    def __init__(self, node_ids: Optional[list[str]] = None):
        self.node_ids = list(node_ids or [])
        message = "Workflow graph contains a cycle"
        if self.node_ids:
            message = f"{message} involving nodes: {', '.join(self.node_ids)}"
        super().__init__(message, 422, "CYCLIC_GRAPH")


class SandboxError(WorkflowEngineError):
    """Script rejected or failed inside the restricted interpreter."""

    def __init__(self, message: str = "Script execution failed"):
        super().__init__(message, 422, "SCRIPT_ERROR")


class NodeTimeoutError(WorkflowEngineError):
    """A node did not finish within its time limit."""

    def __init__(self, node_id: str, timeout: float):
        self.node_id = node_id
        self.timeout = timeout
        super().__init__(f"Node '{node_id}' timed out after {timeout}s", 504, "NODE_TIMEOUT")


class InvalidCanvasError(WorkflowEngineError):
    """A stored canvas does not have the node/edge shape the engine reads."""

    def __init__(self, message: str = "Invalid workflow canvas"):
        super().__init__(message, 422, "INVALID_CANVAS")
