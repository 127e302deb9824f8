"""Shared pytest fixtures for the workflow engine test suite.

Provides:
- A temporary SQLite database per test (aiosqlite, no server needed)
- Services, engine, job queue and trigger dispatcher wired to it
- Node services with an httpx MockTransport and a no-op sleep
- FastAPI test client (httpx.AsyncClient over ASGITransport)
- Canvas builders
"""

import os
import tempfile
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Override settings BEFORE any app imports
_TMP_DIR = tempfile.mkdtemp(prefix="workflow-engine-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP_DIR}/default.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")

from app.config import Settings  # noqa: E402
from db.database import create_db_engine, create_session_factory, init_db  # noqa: E402
from nodes.base_node import NodeServices  # noqa: E402
from nodes.registry import NodeRegistry  # noqa: E402
from services.dead_letter_service import DeadLetterService  # noqa: E402
from services.execution_service import ExecutionService  # noqa: E402
from services.job_service import JobService  # noqa: E402
from services.workflow_service import WorkflowService  # noqa: E402
from triggers.manager import TriggerDispatcher  # noqa: E402
from workflow.engine import WorkflowEngine  # noqa: E402
from workflow.jobs import JobQueue  # noqa: E402


# ---------------------------------------------------------------------------
# Settings / node services
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return Settings(
        ENVIRONMENT="testing",
        NODE_TIMEOUT_SECONDS=5,
        TRIGGER_WORKERS=2,
    )


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested waits."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _default_http_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"url": str(request.url), "method": request.method})


@pytest.fixture
def http_handler():
    """Mutable request handler used by the MockTransport.

    Tests replace ``http_handler.func`` to script responses.
    """

    class Handler:
        func = staticmethod(_default_http_handler)
        requests: list[httpx.Request] = []

        def __call__(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.func(request)

    handler = Handler()
    handler.requests = []
    return handler


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def node_services(settings, http_handler, fake_sleep) -> NodeServices:
    return NodeServices(
        settings=settings,
        http_transport=httpx.MockTransport(http_handler),
        document_store=None,
        sleep=fake_sleep,
    )


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """A fresh SQLite file per test, with all tables created."""
    engine = create_db_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def workflow_service(session_factory) -> WorkflowService:
    return WorkflowService(session_factory)


@pytest.fixture
def execution_service(session_factory) -> ExecutionService:
    return ExecutionService(session_factory)


@pytest.fixture
def job_service(session_factory) -> JobService:
    return JobService(session_factory)


@pytest.fixture
def dead_letter_service(session_factory) -> DeadLetterService:
    return DeadLetterService(session_factory)


# ---------------------------------------------------------------------------
# Engine / queue / dispatcher
# ---------------------------------------------------------------------------

@pytest.fixture
def engine(workflow_service, execution_service, node_services, settings) -> WorkflowEngine:
    return WorkflowEngine(
        workflows=workflow_service,
        executions=execution_service,
        registry=NodeRegistry(node_services),
        settings=settings,
    )


@pytest.fixture
def job_queue(engine, job_service, dead_letter_service, settings) -> JobQueue:
    return JobQueue(
        engine=engine,
        jobs=job_service,
        dead_letters=dead_letter_service,
        settings=settings,
    )


@pytest_asyncio.fixture
async def dispatcher(engine, workflow_service, dead_letter_service, settings):
    trigger_dispatcher = TriggerDispatcher(
        engine=engine,
        workflows=workflow_service,
        dead_letters=dead_letter_service,
        settings=settings,
    )
    trigger_dispatcher.start()
    yield trigger_dispatcher
    await trigger_dispatcher.stop()


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def app(engine, job_queue, dispatcher, dead_letter_service):
    """FastAPI app with its dependencies wired to the test database."""
    from app import dependencies
    from app.main import create_app

    test_app = create_app(use_lifespan=False)
    test_app.dependency_overrides[dependencies.get_engine] = lambda: engine
    test_app.dependency_overrides[dependencies.get_queue] = lambda: job_queue
    test_app.dependency_overrides[dependencies.get_dispatcher] = lambda: dispatcher
    test_app.dependency_overrides[dependencies.get_dead_letters] = lambda: dead_letter_service
    return test_app


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Canvas helpers
# ---------------------------------------------------------------------------

def make_canvas(nodes: list[dict], edges: list[tuple[str, str]] = ()) -> dict:
    """Build a canvas from node dicts and (source, target) pairs."""
    return {
        "nodes": nodes,
        "edges": [{"source": s, "target": t} for s, t in edges],
    }


@pytest.fixture
def canvas():
    return make_canvas
