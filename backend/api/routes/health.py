"""Health check endpoints.

Provides:
- Liveness and database check (/health)
- Node handler catalogue (/health/nodes)
"""

import logging
import time
from typing import Any

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import text

from app.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()


@router.get("", response_model=dict[str, Any])
async def health_check() -> dict[str, Any]:
    """
    Health check with database verification.
    Returns 503 if the database is unreachable.
    """
    from db.database import engine

    settings = get_settings()
    checks: dict[str, str] = {}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        checks["database"] = "unavailable"

    if checks["database"] == "unavailable":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "checks": checks},
        )

    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        **checks,
    }


@router.get("/nodes", response_model=list[dict[str, Any]])
async def list_node_types() -> list[dict[str, Any]]:
    """List the node handlers the engine can dispatch to."""
    from nodes.registry import NodeRegistry

    return NodeRegistry().list_all()
