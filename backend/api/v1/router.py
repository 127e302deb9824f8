"""API v1 aggregated router, mounted under ``API_V1_PREFIX`` in main.py."""

from fastapi import APIRouter

from api.routes import dead_letters, executions, health, jobs, triggers, workflows

api_v1_router = APIRouter()

# The health router carries its own /health prefix
api_v1_router.include_router(health.router, tags=["Health"])

for prefix, module, tag in (
    ("/workflows", workflows, "Workflows"),
    ("/executions", executions, "Executions"),
    ("/triggers", triggers, "Triggers"),
    ("/jobs", jobs, "Jobs"),
    ("/dead-letters", dead_letters, "Dead Letters"),
):
    api_v1_router.include_router(module.router, prefix=prefix, tags=[tag])
