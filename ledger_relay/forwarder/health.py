"""Forwarder backlog health and the degraded signal."""

from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger_relay.core.exceptions import StoreError
from ledger_relay.db.models.ledger_event import LedgerEvent
from ledger_relay.forwarder.notifier import Notifier, NullNotifier
from ledger_relay.schemas.forwarder import ForwarderHealth

logger = structlog.get_logger(__name__)

DEGRADED_SIGNAL = "relay.forwarder.degraded"
FAILURE_WINDOW = timedelta(hours=1)


class ForwarderHealthCheck:
    """Computes backlog counters and signals the notifier when they look unhealthy.

    Degraded when any of:
      - unforwarded backlog exceeds ``backlog_threshold``
      - failures in the last hour exceed ``failed_last_hour_threshold``
      - a live row is one failure away from the deadletter
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier | None = None,
        backlog_threshold: int = 500,
        failed_last_hour_threshold: int = 25,
        max_attempts: int = 10,
    ) -> None:
        self._session_factory = session_factory
        self.notifier = notifier or NullNotifier()
        self.backlog_threshold = backlog_threshold
        self.failed_last_hour_threshold = failed_last_hour_threshold
        self.max_attempts = max_attempts

    async def collect(self, now: datetime | None = None) -> ForwarderHealth:
        now = now or datetime.now(timezone.utc)
        live = (LedgerEvent.forwarded_at.is_(None), LedgerEvent.deadletter_at.is_(None))
        count = func.count(LedgerEvent.id)

        try:
            async with self._session_factory() as session:
                unforwarded = await session.scalar(select(count).where(*live))
                claimed = await session.scalar(select(count).where(*live, LedgerEvent.claimed_at.is_not(None)))
                deadlettered = await session.scalar(select(count).where(LedgerEvent.deadletter_at.is_not(None)))
                failed_recent = await session.scalar(
                    select(count).where(
                        LedgerEvent.forwarded_at.is_(None),
                        LedgerEvent.forward_error.is_not(None),
                        LedgerEvent.last_attempt_at >= now - FAILURE_WINDOW,
                    )
                )
                max_attempts_seen = await session.scalar(
                    select(func.coalesce(func.max(LedgerEvent.attempts), 0)).where(*live)
                )
        except SQLAlchemyError as exc:
            raise StoreError("collect_health", str(exc)) from exc

        health = ForwarderHealth(
            backlog_unforwarded=unforwarded or 0,
            backlog_claimed=claimed or 0,
            deadlettered=deadlettered or 0,
            failed_last_hour=failed_recent or 0,
            max_attempts_seen=max_attempts_seen or 0,
        )

        if health.backlog_unforwarded > self.backlog_threshold:
            health.reasons.append("backlog_high")
        if health.failed_last_hour > self.failed_last_hour_threshold:
            health.reasons.append("failures_high")
        if health.max_attempts_seen and health.max_attempts_seen >= self.max_attempts - 1:
            health.reasons.append("near_deadletter")
        health.degraded = bool(health.reasons)
        return health

    async def check(self, now: datetime | None = None) -> ForwarderHealth:
        """Collect health and send the degraded signal when needed."""
        health = await self.collect(now)
        if health.degraded:
            try:
                await self.notifier.notify(DEGRADED_SIGNAL, health.model_dump())
            except Exception as exc:
                logger.warning("forwarder_notify_failed", event_key=DEGRADED_SIGNAL, error=str(exc))
        return health
