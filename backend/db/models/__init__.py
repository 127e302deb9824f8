"""Database models for the workflow execution engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.workflow import Workflow
from db.models.execution import Execution
from db.models.job import WorkflowJob
from db.models.dead_letter import DeadLetter

__all__ = [
    "Workflow",
    "Execution",
    "WorkflowJob",
    "DeadLetter",
]
