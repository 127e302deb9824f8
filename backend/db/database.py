"""SQLAlchemy async database setup and engine configuration.

SQLite (the default, through aiosqlite) and PostgreSQL (through asyncpg, the
``postgres`` extra) are both supported. SQLite connections are switched to
WAL mode with a busy timeout, since the API process, the trigger workers and
the job pollers write to the same file concurrently.
"""

from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings

settings = get_settings()

SQLITE_BUSY_TIMEOUT_MS = 5000


def _configure_sqlite(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Create the async engine for ``database_url`` (default ``DATABASE_URL``)."""
    url = database_url or settings.DATABASE_URL

    if url.startswith("sqlite"):
        db_engine = create_async_engine(url, echo=settings.SQLALCHEMY_ECHO)
        event.listen(db_engine.sync_engine, "connect", _configure_sqlite)
        return db_engine

    return create_async_engine(
        url,
        echo=settings.SQLALCHEMY_ECHO,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
    )


def create_session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory handed to the services; sessions are short-lived, one per operation."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


# Process-wide engine used by the API and the singletons
engine = create_db_engine()
AsyncSessionLocal = create_session_factory(engine)


async def init_db(db_engine: Optional[AsyncEngine] = None) -> None:
    """Create any missing tables. Called once at startup."""
    from db.base import Base
    import db.models  # noqa: F401  (registers tables on Base.metadata)

    async with (db_engine or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the process-wide engine's connections."""
    await engine.dispose()
