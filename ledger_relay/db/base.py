"""Async engine and session factory for the ledger database.

The engine is process-wide: the app lifespan and the CLI script call
``init_db`` once and ``close_db`` on the way out. Forwarder components never
touch the engine; they receive the session factory.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from ledger_relay.core.config import get_settings


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str, echo: bool) -> dict:
    options = {"echo": echo}
    # SQLite uses a static pool; pool sizing only applies to server databases
    if not url.startswith("sqlite"):
        options.update(pool_pre_ping=True, pool_size=5, max_overflow=5)
    return options


async def init_db(url: str | None = None, create_tables: bool = True) -> async_sessionmaker[AsyncSession]:
    """Create the engine on first call and return the session factory.

    Args:
        url: Override for DATABASE_URL
        create_tables: Run ``create_all`` for the ledger table. Deployments
            that manage the schema with alembic may turn this off.
    """
    global _engine, _session_factory

    if _session_factory is not None:
        return _session_factory

    settings = get_settings()
    db_url = url or settings.database_url

    _engine = create_async_engine(db_url, **_engine_options(db_url, settings.debug))
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)

    if create_tables:
        import ledger_relay.db.models  # noqa: F401

        async with _engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    return _session_factory


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency and script accessor for the shared session factory.

    Raises RuntimeError if init_db() has not been called.
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


async def ping_db() -> bool:
    """True when a trivial query round-trips."""
    async with get_session_factory()() as session:
        await session.execute(text("SELECT 1"))
    return True
