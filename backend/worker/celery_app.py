"""Celery application for the scheduled job poller.

Run a worker and the beat scheduler with:

    celery -A worker.celery_app worker -Q jobs --loglevel=info
    celery -A worker.celery_app beat

Beat enqueues ``process_pending_jobs`` every ``JOB_POLL_INTERVAL_SECONDS``;
the task claims due jobs atomically, so several workers may consume the
``jobs`` queue at once.
"""

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from app.config import get_settings

settings = get_settings()

JOBS_QUEUE = "jobs"

celery_app = Celery(
    "workflow_engine",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["worker.tasks.jobs"],
)

# One poll may run a full batch of workflows, each bounded by the node timeout
_poll_time_limit = settings.NODE_TIMEOUT_SECONDS * 2

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue=JOBS_QUEUE,
    task_routes={"worker.tasks.jobs.*": {"queue": JOBS_QUEUE}},
    result_expires=3600,
    task_soft_time_limit=_poll_time_limit,
    task_time_limit=_poll_time_limit + 60,
    # A poll that dies mid-batch leaves claimed jobs running; retry_job resets them
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "process-pending-workflow-jobs": {
            "task": "worker.tasks.jobs.process_pending_jobs",
            "schedule": settings.JOB_POLL_INTERVAL_SECONDS,
            "options": {"queue": JOBS_QUEUE, "expires": settings.JOB_POLL_INTERVAL_SECONDS},
        },
    },
)


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Use the application's structlog pipeline instead of Celery's handlers."""
    from core.logging_config import setup_logging

    setup_logging()
