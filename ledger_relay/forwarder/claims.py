"""Claim-based leasing of ledger rows.

There is no lock service. The conditional UPDATE in ``claim`` (guarded by
``claimed_at IS NULL``) is the only thing that stops two workers from
delivering the same row at the same time: whichever write lands first wins,
the other updates zero rows and walks away.

Lease lifecycle:
    UNCLAIMED --claim--> CLAIMED --outcome--> FORWARDED | UNCLAIMED | DEADLETTERED
    CLAIMED --reclaim_stale (ttl expired)--> UNCLAIMED
"""

import uuid
from datetime import datetime, timedelta

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger_relay.core.exceptions import StoreError
from ledger_relay.db.models.ledger_event import LedgerEvent

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_CEILING = 200


def _live():
    """Rows that are neither forwarded nor deadlettered."""
    return (LedgerEvent.forwarded_at.is_(None), LedgerEvent.deadletter_at.is_(None))


class ClaimManager:
    """Owns reclaim, candidate selection and per-row claims against the ledger table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        batch_ceiling: int = DEFAULT_BATCH_CEILING,
    ) -> None:
        self._session_factory = session_factory
        self.batch_ceiling = batch_ceiling

    async def reclaim_stale(self, now: datetime, ttl: timedelta) -> int:
        """Release leases older than ``ttl`` whose worker never recorded an outcome.

        Returns:
            Number of rows released
        """
        threshold = now - ttl
        stmt = (
            update(LedgerEvent)
            .where(LedgerEvent.claimed_at < threshold, *_live())
            .values(claimed_at=None, claim_id=None)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreError("reclaim_stale", str(exc)) from exc

        released = result.rowcount or 0
        if released:
            logger.info("ledger_stale_claims_released", released=released, threshold=threshold.isoformat())
        return released

    async def select_candidates(self, limit: int) -> list[LedgerEvent]:
        """Unclaimed live rows, oldest first, at most ``min(limit, batch_ceiling)``."""
        limit = min(limit, self.batch_ceiling)
        if limit <= 0:
            return []

        stmt = (
            select(LedgerEvent)
            .where(*_live(), LedgerEvent.claimed_at.is_(None))
            .order_by(LedgerEvent.created_at.asc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StoreError("select_candidates", str(exc)) from exc

    async def claim(self, record_id: uuid.UUID, claim_id: str, now: datetime) -> LedgerEvent | None:
        """Atomically lease one row.

        Increments ``attempts`` in the same write. Returns the claimed row, or
        None if another worker got there first (or the row went terminal).
        """
        stmt = (
            update(LedgerEvent)
            .where(
                LedgerEvent.id == record_id,
                LedgerEvent.claimed_at.is_(None),
                *_live(),
            )
            .values(
                claimed_at=now,
                claim_id=claim_id,
                attempts=LedgerEvent.attempts + 1,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                if result.rowcount != 1:
                    await session.rollback()
                    return None

                # Read back inside the same transaction, while we still hold the row
                claimed = await session.execute(
                    select(LedgerEvent)
                    .where(LedgerEvent.id == record_id)
                    .execution_options(populate_existing=True)
                )
                row = claimed.scalar_one()
                await session.commit()
                return row
        except SQLAlchemyError as exc:
            raise StoreError("claim", str(exc)) from exc
