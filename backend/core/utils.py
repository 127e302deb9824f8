"""
Utility functions for the workflow execution engine.

Includes:
- Slug generation
- Execution and job identifiers
- UTC datetime helpers
- JSON-safe serialization of run state
"""

import re
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4


def generate_slug(name: str) -> str:
    """
    Generate a URL-friendly slug from a string.

    Converts to lowercase, replaces spaces with hyphens, removes special characters.

    Args:
        name: String to convert to slug

    Returns:
        URL-friendly slug
    """
    slug = name.lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^a-z0-9\-_]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def new_execution_id() -> str:
    """Return a fresh, globally unique execution id."""
    return f"exec_{uuid4().hex}"


def new_job_id() -> str:
    """Return a fresh, globally unique job id."""
    return f"job_{uuid4().hex}"


def utcnow() -> datetime:
    """
    Get the current UTC time as a naive datetime.

    All timestamps are stored naive (UTC) so that SQLite and PostgreSQL
    comparisons behave identically.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: datetime | None) -> str | None:
    """Render a naive UTC datetime as ISO-8601 with a trailing Z."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


def to_jsonable(obj: Any, depth: int = 0) -> Any:
    """Recursively coerce a value into something a JSON column accepts."""
    if depth > 32:
        return str(obj)
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, datetime):
        return isoformat(obj)
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v, depth + 1) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [to_jsonable(v, depth + 1) for v in obj]
    return str(obj)
