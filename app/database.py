"""Database configuration and connection management."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings

SERIALIZATION_FAILURE = "40001"


def to_async_url(url: str) -> str:
    """Convert sync database URLs to their async driver equivalent."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def _enable_sqlite_write_locking(engine: AsyncEngine) -> None:
    """Start every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first write, which lets two bookings both
    pass the overlap check before either takes the write lock.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_conn: Any, connection_record: Any) -> None:
        dbapi_conn.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for(url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine with the locking behaviour bookings rely on."""
    url = to_async_url(url)

    if url.startswith("sqlite"):
        new_engine = create_async_engine(url, echo=settings.debug, **kwargs)
        _enable_sqlite_write_locking(new_engine)
        return new_engine

    options: dict[str, Any] = {
        "echo": settings.debug,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }
    if "poolclass" not in kwargs:
        options.update(pool_size=10, max_overflow=20)
    if url.startswith("postgresql+asyncpg"):
        options["connect_args"] = {
            "server_settings": {
                "application_name": settings.app_name,
            },
        }
    options.update(kwargs)
    return create_async_engine(url, **options)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the given engine."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine: AsyncEngine = create_engine_for(settings.database_url)

# Async session factory
AsyncSessionLocal = create_session_factory(engine)


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
    isolation_level: str | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Open a session and a single transaction around it.

    Everything executed on the yielded session commits together when the
    block exits, or rolls back together when it raises.

    Args:
        session_factory: Factory producing sessions
        isolation_level: Optional isolation level for this transaction only.
            Ignored on SQLite, where write transactions are already serialized.

    Yields:
        Session bound to an open transaction
    """
    async with session_factory() as session:
        async with session.begin():
            bind = session.bind
            if isolation_level and bind is not None and bind.dialect.name != "sqlite":
                await session.connection(execution_options={"isolation_level": isolation_level})
            yield session


def is_serialization_failure(exc: DBAPIError) -> bool:
    """Check whether the store aborted a transaction to keep it serializable."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == SERIALIZATION_FAILURE


async def check_database_connection() -> bool:
    """Check if database connection is healthy."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
