"""Shared test fixtures: on-disk SQLite ledger, forwarder config, recording sink."""

import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ledger_relay.core.config import ForwarderConfig
from ledger_relay.db.base import Base
from ledger_relay.db.models.ledger_event import LedgerEvent

SINK_URL = "https://sink.test/ingest"
SINK_SECRET = "test-signing-secret"

# Fixed "now" for deterministic lease math
NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
async def engine(tmp_path) -> AsyncEngine:
    """SQLite file database with the ledger table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", echo=False)

    # Take the write lock at BEGIN so concurrent writers queue on the busy
    # timeout instead of failing a SHARED -> RESERVED upgrade.
    @event.listens_for(engine.sync_engine, "connect")
    def _no_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    import ledger_relay.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def forwarder_config() -> ForwarderConfig:
    """Enabled config pointing at the fake sink, with a small retry budget."""
    return ForwarderConfig(
        enabled=True,
        ingest_url=SINK_URL,
        ingest_secret=SINK_SECRET,
        environment="test",
        release="build-42",
        max_attempts=3,
    )


@pytest.fixture
def insert_event(session_factory):
    """Insert one ledger row. Rows get strictly increasing created_at by default."""
    counter = {"n": 0}

    async def _insert(**overrides) -> uuid.UUID:
        counter["n"] += 1
        values = {
            "id": uuid.uuid4(),
            "deal_id": "deal-1",
            "bank_id": "bank-1",
            "event_key": "document.classified",
            "stage": "classify",
            "status": "ok",
            "payload": {"document_type": "BUSINESS_TAX_RETURN", "confidence": 0.9},
            "meta": None,
            "created_at": NOW - timedelta(hours=1) + timedelta(seconds=counter["n"]),
            "attempts": 0,
        }
        values.update(overrides)
        async with session_factory() as session:
            session.add(LedgerEvent(**values))
            await session.commit()
        return values["id"]

    return _insert


@pytest.fixture
def fetch_event(session_factory):
    """Read a fresh copy of a ledger row."""

    async def _fetch(event_id: uuid.UUID) -> LedgerEvent:
        async with session_factory() as session:
            return await session.get(LedgerEvent, event_id)

    return _fetch


class RecordingSink:
    """httpx MockTransport handler that records requests and answers with a fixed status."""

    def __init__(self, status_code: int = 200, error: Exception | None = None) -> None:
        self.status_code = status_code
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def accepting_sink() -> RecordingSink:
    return RecordingSink(status_code=202)


@pytest.fixture
def failing_sink() -> RecordingSink:
    return RecordingSink(status_code=503)
