"""Batch driver: one forwarding run over the pipeline ledger.

Steps:
  1. Reclaim stale leases (ttl expired, no outcome recorded)
  2. Select unclaimed candidates, oldest first, bounded by the ceiling
  3. Claim each row with a conditional update (losers are skipped)
  4. Build, redact, sign and send each claimed row
  5. Record forwarded / retry / deadletter against the claim id

Never raises. Telemetry being off, misconfigured or down must never affect
the host application; every failure ends up in the returned counts or in a
row's forward_error.
"""

import asyncio
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger_relay.core.config import ForwarderConfig
from ledger_relay.core.exceptions import StoreError
from ledger_relay.db.models.ledger_event import LedgerEvent
from ledger_relay.forwarder.claims import ClaimManager
from ledger_relay.forwarder.delivery import DeliveryClient, DeliveryResult
from ledger_relay.forwarder.envelope import build_envelope
from ledger_relay.forwarder.notifier import Notifier, NullNotifier
from ledger_relay.forwarder.outcome import Outcome, OutcomeRecorder
from ledger_relay.schemas.forwarder import ForwardResult

logger = structlog.get_logger(__name__)

DEADLETTER_SIGNAL = "relay.forwarder.deadlettered"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LedgerForwarder:
    """Runs forwarding batches for one configuration snapshot.

    Args:
        session_factory: Async session factory for the ledger database
        config: Explicit forwarder configuration (no ambient lookups mid-run)
        notifier: Receives a signal when a run deadletters rows
        transport: Optional httpx transport for the delivery client
        clock: Returns the current UTC time (tests pin it)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: ForwarderConfig,
        notifier: Notifier | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.claims = ClaimManager(session_factory, batch_ceiling=config.batch_ceiling)
        self.recorder = OutcomeRecorder(session_factory, max_attempts=config.max_attempts)
        self.notifier = notifier or NullNotifier()
        self._transport = transport
        self._clock = clock

    async def run_batch(self, max_records: int | None = None) -> ForwardResult:
        reason = self.config.skip_reason()
        if reason is not None:
            logger.info("ledger_forward_skipped", reason=reason)
            return ForwardResult(skipped=True, reason=reason)

        claim_id = str(uuid.uuid4())
        try:
            return await self._run(claim_id, max_records)
        except Exception as exc:
            logger.error(
                "ledger_forward_unexpected_error",
                claim_id=claim_id,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            return ForwardResult(ok=False, reason="internal_error", claim_id=claim_id)

    async def _run(self, claim_id: str, max_records: int | None) -> ForwardResult:
        log = logger.bind(claim_id=claim_id)
        now = self._clock()

        try:
            await self.claims.reclaim_stale(now, self.config.claim_ttl)
            candidates = await self.claims.select_candidates(self.config.batch_limit(max_records))
        except StoreError as exc:
            log.error("ledger_forward_store_error", operation=exc.operation, error=exc.detail)
            return ForwardResult(ok=False, reason="store_error", claim_id=claim_id)

        claimed, contended = await self._claim_all(candidates, claim_id, now, log)
        result = ForwardResult(claim_id=claim_id, attempted=len(claimed), contended=contended)
        if not claimed:
            log.info("ledger_forward_nothing_claimed", candidates=len(candidates), contended=contended)
            return result

        outcomes = await self._deliver_all(claimed, claim_id)
        for delivered, outcome in outcomes:
            if outcome is Outcome.FORWARDED:
                result.forwarded += 1
            elif outcome is Outcome.STALE:
                result.stale += 1
            if not delivered:
                result.failed += 1
            if outcome is Outcome.DEADLETTERED:
                result.deadlettered += 1

        log.info(
            "ledger_forward_batch_done",
            attempted=result.attempted,
            forwarded=result.forwarded,
            failed=result.failed,
            deadlettered=result.deadlettered,
            contended=result.contended,
            stale=result.stale,
        )

        if result.deadlettered:
            await self._signal(
                DEADLETTER_SIGNAL,
                {"claim_id": claim_id, "deadlettered": result.deadlettered},
            )
        return result

    async def _claim_all(
        self, candidates: list[LedgerEvent], claim_id: str, now: datetime, log
    ) -> tuple[list[LedgerEvent], int]:
        claimed: list[LedgerEvent] = []
        contended = 0
        for candidate in candidates:
            try:
                row = await self.claims.claim(candidate.id, claim_id, now)
            except StoreError as exc:
                # Deliver what we already hold; unclaimed rows wait for the next run
                log.error("ledger_claim_failed", trace_id=str(candidate.id), error=exc.detail)
                break
            if row is None:
                contended += 1
            else:
                claimed.append(row)
        return claimed, contended

    async def _deliver_all(self, rows: list[LedgerEvent], claim_id: str) -> list[tuple[bool, Outcome]]:
        async with DeliveryClient(
            self.config.ingest_url,
            self.config.ingest_secret,
            timeout=self.config.timeout_seconds,
            signature_header=self.config.signature_header,
            transport=self._transport,
        ) as client:
            if self.config.delivery_concurrency <= 1:
                return [await self._forward_one(client, row, claim_id) for row in rows]

            semaphore = asyncio.Semaphore(self.config.delivery_concurrency)

            async def bounded(row: LedgerEvent) -> tuple[bool, Outcome]:
                async with semaphore:
                    return await self._forward_one(client, row, claim_id)

            results = await asyncio.gather(*(bounded(row) for row in rows), return_exceptions=True)

        outcomes: list[tuple[bool, Outcome]] = []
        for row, result in zip(rows, results):
            if isinstance(result, BaseException):
                logger.error("ledger_forward_task_failed", trace_id=str(row.id), error_type=type(result).__name__)
                result = (False, Outcome.STALE)
            outcomes.append(result)
        return outcomes

    async def _forward_one(self, client: DeliveryClient, row: LedgerEvent, claim_id: str) -> tuple[bool, Outcome]:
        trace_id = str(row.id)
        try:
            envelope = build_envelope(row, self.config)
        except Exception as exc:
            logger.warning("ledger_envelope_build_failed", trace_id=trace_id, error_type=type(exc).__name__)
            delivery = DeliveryResult(ok=False, error=f"envelope_build_failed: {type(exc).__name__}")
        else:
            delivery = await client.send(envelope)

        if not delivery.ok:
            logger.info("ledger_delivery_failed", trace_id=trace_id, attempts=row.attempts, error=delivery.error)

        now = self._clock()
        try:
            if delivery.ok:
                outcome = await self.recorder.record_success(row, claim_id, now)
            else:
                outcome = await self.recorder.record_failure(row, claim_id, delivery.error or "unknown", now)
        except StoreError as exc:
            # The lease expires and the row is retried by a later run
            logger.error("ledger_outcome_write_failed", trace_id=trace_id, error=exc.detail)
            outcome = Outcome.STALE
        except Exception as exc:
            logger.error(
                "ledger_outcome_write_failed",
                trace_id=trace_id,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            outcome = Outcome.STALE
        return delivery.ok, outcome

    async def _signal(self, event_key: str, payload: dict) -> None:
        try:
            await self.notifier.notify(event_key, payload)
        except Exception as exc:
            logger.warning("forwarder_notify_failed", event_key=event_key, error=str(exc))


async def forward_ledger_batch(
    session_factory: async_sessionmaker[AsyncSession],
    config: ForwarderConfig,
    max_records: int | None = None,
    notifier: Notifier | None = None,
) -> ForwardResult:
    """Run one batch with a fresh forwarder. Shared by the routes and the CLI script."""
    forwarder = LedgerForwarder(session_factory, config, notifier=notifier)
    return await forwarder.run_batch(max_records)
