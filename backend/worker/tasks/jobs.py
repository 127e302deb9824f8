"""Celery task that drains the scheduled workflow job queue.

Enqueued by Celery Beat every JOB_POLL_INTERVAL_SECONDS. Each tick gets its own event loop and a
fresh database engine, since async connections cannot be shared across the
loops of a forked worker.
"""

import asyncio

import structlog

from core.logging_config import log_context
from worker.celery_app import JOBS_QUEUE, celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(
    name="worker.tasks.jobs.process_pending_jobs",
    bind=True,
    max_retries=2,
    default_retry_delay=15,
    queue=JOBS_QUEUE,
)
def process_pending_jobs(self):
    """Claim and run every due workflow job."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        with log_context(task_id=self.request.id):
            processed = loop.run_until_complete(_process_once())
            if processed:
                logger.info("job_poll_done", processed=processed)
        return {"processed": processed}
    except Exception as exc:
        logger.error("job_poll_failed", error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
    finally:
        loop.close()


async def _process_once() -> int:
    from db.database import create_db_engine, create_session_factory
    from workflow.engine import build_workflow_engine
    from workflow.jobs import build_job_queue

    db_engine = create_db_engine()
    session_factory = create_session_factory(db_engine)
    engine = build_workflow_engine(session_factory)
    try:
        queue = build_job_queue(session_factory, engine)
        return await queue.process_pending_jobs()
    finally:
        store = engine.registry.services.document_store
        if store is not None:
            store.close()
        await db_engine.dispose()
