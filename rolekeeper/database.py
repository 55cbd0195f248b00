"""
Async engine and session factory (SQLAlchemy 2.0).

PostgreSQL via asyncpg in production; SQLite via aiosqlite for tests and
local runs. Services never commit; the caller owning the session does.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from rolekeeper.config import get_settings
from rolekeeper.logging_config import get_logger

settings = get_settings()
logger = get_logger(__name__)

is_sqlite = settings.database_url.startswith("sqlite")


def _engine_options() -> Dict[str, Any]:
    if is_sqlite:
        # One connection per session; the flush guard's audit insert opens
        # its own and must not collide with the session's transaction.
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": NullPool,
        }
    return {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
    }


engine = create_async_engine(settings.database_url, echo=settings.debug, **_engine_options())

if is_sqlite:

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_conn, connection_record):
        """WAL lets readers and the independent audit writer proceed side by side."""
        cursor = dbapi_conn.cursor()
        for pragma in ("journal_mode=WAL", "foreign_keys=ON", "busy_timeout=5000"):
            cursor.execute(f"PRAGMA {pragma}")
        cursor.close()


async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """
    One unit of work outside a request: commit on success, roll back on error.

    Usage:
        async with session_scope() as session:
            await ExpirationService(session).process_due()
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_database() -> bool:
    """Whether a trivial query succeeds; used by the health endpoint."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.warning("Database health check failed", extra={"error": repr(exc)})
        return False


async def init_db() -> None:
    """Create missing tables. Production schemas are managed by alembic."""
    from rolekeeper.kernel.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
