"""Applies one delivery outcome back onto a claimed ledger row."""

from datetime import datetime
from enum import Enum

import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger_relay.core.exceptions import StoreError
from ledger_relay.db.models.ledger_event import LedgerEvent

logger = structlog.get_logger(__name__)

FORWARD_ERROR_MAX_LENGTH = 200


class Outcome(str, Enum):
    """What a resolved attempt did to the row."""

    FORWARDED = "forwarded"
    RETRY = "retry"
    DEADLETTERED = "deadlettered"
    STALE = "stale"  # lease was reclaimed before we wrote; nothing changed


class OutcomeRecorder:
    """Writes forwarded / retry / deadletter transitions.

    Every write is guarded by the claim id used to acquire the row, so a late
    outcome from a lease that was already reclaimed cannot clobber the state
    produced by a newer claim.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], max_attempts: int = 10) -> None:
        self._session_factory = session_factory
        self.max_attempts = max_attempts

    async def record_success(self, record: LedgerEvent, claim_id: str, now: datetime) -> Outcome:
        applied = await self._apply(
            record,
            claim_id,
            {
                "forwarded_at": now,
                "claimed_at": None,
                "claim_id": None,
                "forward_error": None,
                "last_attempt_at": now,
            },
        )
        return Outcome.FORWARDED if applied else Outcome.STALE

    async def record_failure(self, record: LedgerEvent, claim_id: str, error: str, now: datetime) -> Outcome:
        """Release the lease right away so the next run can retry, or deadletter.

        ``record.attempts`` already includes the increment from this run's claim.
        """
        exhausted = (record.attempts or 0) >= self.max_attempts
        values = {
            "forward_error": error[:FORWARD_ERROR_MAX_LENGTH],
            "claimed_at": None,
            "claim_id": None,
            "last_attempt_at": now,
        }
        if exhausted:
            values["deadletter_at"] = now

        applied = await self._apply(record, claim_id, values)
        if not applied:
            return Outcome.STALE
        if exhausted:
            logger.warning(
                "ledger_event_deadlettered",
                trace_id=str(record.id),
                attempts=record.attempts,
                error=values["forward_error"],
            )
            return Outcome.DEADLETTERED
        return Outcome.RETRY

    async def _apply(self, record: LedgerEvent, held_claim_id: str, values: dict) -> bool:
        """Write ``values`` only while the row is still leased under ``held_claim_id``."""
        stmt = (
            update(LedgerEvent)
            .where(LedgerEvent.id == record.id, LedgerEvent.claim_id == held_claim_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreError("record_outcome", str(exc)) from exc

        applied = result.rowcount == 1
        if not applied:
            logger.info("ledger_outcome_discarded_stale_claim", trace_id=str(record.id), claim_id=held_claim_id)
        return applied
