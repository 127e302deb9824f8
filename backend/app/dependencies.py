"""FastAPI dependency injection functions.

Route handlers depend on these getters rather than on the singletons
directly, so tests can swap in components wired to a temporary database.
"""

from services.dead_letter_service import DeadLetterService
from triggers.manager import TriggerDispatcher, get_trigger_dispatcher
from workflow.engine import WorkflowEngine, get_workflow_engine
from workflow.jobs import JobQueue, get_job_queue


def get_engine() -> WorkflowEngine:
    """Provide the workflow engine."""
    return get_workflow_engine()


def get_queue() -> JobQueue:
    """Provide the scheduled job queue."""
    return get_job_queue()


def get_dispatcher() -> TriggerDispatcher:
    """Provide the trigger dispatcher."""
    return get_trigger_dispatcher()


def get_dead_letters() -> DeadLetterService:
    """Provide the dead-letter log."""
    from db.database import AsyncSessionLocal

    return DeadLetterService(AsyncSessionLocal)
