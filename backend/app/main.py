"""Workflow Execution Engine - FastAPI application.

Run with:

    uvicorn app.main:app --app-dir backend

The trigger dispatcher's workers live on the API process's event loop;
scheduled jobs are polled by the Celery worker (see ``worker.celery_app``)
or on demand through ``POST /api/v1/jobs/process``.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.routes import health
from api.v1.router import api_v1_router
from app.config import get_settings
from core.logging_config import setup_logging
from core.middleware import RequestTrackingMiddleware, setup_exception_handlers
from db.database import close_db, init_db
from triggers.manager import get_trigger_dispatcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging()

    await init_db()
    dispatcher = get_trigger_dispatcher()
    dispatcher.start()
    logger.info("%s v%s started (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)

    try:
        yield
    finally:
        await dispatcher.stop()
        document_store = dispatcher.engine.registry.services.document_store
        if document_store is not None:
            document_store.close()
        await close_db()
        logger.info("%s stopped", settings.APP_NAME)


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Build the FastAPI application.

    Args:
        use_lifespan: Start the dispatcher and database on startup. Tests
            pass False and wire their own dependencies.
    """
    settings = get_settings()
    interactive_docs = settings.is_development or settings.DEBUG

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Runs stored node/edge workflow graphs on demand, on trigger events and on a schedule.",
        debug=settings.DEBUG,
        docs_url="/docs" if interactive_docs else None,
        redoc_url="/redoc" if interactive_docs else None,
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(RequestTrackingMiddleware)
    setup_exception_handlers(app)

    # Unversioned probe for load balancers, next to the versioned API
    app.include_router(health.router, prefix="/api")
    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()
