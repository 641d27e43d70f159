"""Forwarder routes: manual trigger, scheduler trigger and backlog health."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger_relay.core.auth import require_cron_secret, require_forwarder_token
from ledger_relay.core.config import ForwarderConfig, Settings, get_settings
from ledger_relay.core.exceptions import StoreError
from ledger_relay.db.base import get_session_factory
from ledger_relay.forwarder.batch import forward_ledger_batch
from ledger_relay.forwarder.health import ForwarderHealthCheck
from ledger_relay.forwarder.notifier import LogNotifier, Notifier
from ledger_relay.metrics.cloudwatch import emit_batch_result
from ledger_relay.schemas.forwarder import ForwarderHealth, ForwardResult

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_forwarder_config(settings: Settings = Depends(get_settings)) -> ForwarderConfig:
    return ForwarderConfig.from_settings(settings)


def get_notifier() -> Notifier:
    return LogNotifier()


@router.post("/forward-ledger", response_model=ForwardResult, dependencies=[Depends(require_forwarder_token)])
async def forward_ledger(
    max: int | None = Query(default=None, ge=1, description="Requested batch size, clamped to the ceiling"),
    config: ForwarderConfig = Depends(get_forwarder_config),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: Notifier = Depends(get_notifier),
):
    """Run one forwarding batch on demand."""
    result = await forward_ledger_batch(session_factory, config, max_records=max, notifier=notifier)
    await emit_batch_result(result, config.environment)
    return result


@router.get("/cron-forward-ledger", response_model=ForwardResult, dependencies=[Depends(require_cron_secret)])
async def cron_forward_ledger(
    config: ForwarderConfig = Depends(get_forwarder_config),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: Notifier = Depends(get_notifier),
):
    """Scheduler entry point: default batch size, same core as the manual trigger."""
    result = await forward_ledger_batch(session_factory, config, notifier=notifier)
    await emit_batch_result(result, config.environment)
    return result


@router.get("/forward-ledger/health", response_model=ForwarderHealth, dependencies=[Depends(require_forwarder_token)])
async def forward_ledger_health(
    settings: Settings = Depends(get_settings),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: Notifier = Depends(get_notifier),
):
    """Backlog counters; signals the notifier when the forwarder looks degraded."""
    check = ForwarderHealthCheck(
        session_factory,
        notifier=notifier,
        backlog_threshold=settings.relay_health_backlog_threshold,
        failed_last_hour_threshold=settings.relay_health_failed_last_hour_threshold,
        max_attempts=settings.relay_max_attempts,
    )
    try:
        return await check.check()
    except StoreError as exc:
        logger.error("forwarder_health_store_error", error=exc.detail)
        raise HTTPException(status_code=503, detail="Ledger store unavailable")
