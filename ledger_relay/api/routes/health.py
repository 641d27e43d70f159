"""Liveness and readiness probes for the relay process."""

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ledger_relay.core.config import ForwarderConfig, Settings, get_settings
from ledger_relay.db.base import ping_db

logger = structlog.get_logger(__name__)

SERVICE_NAME = "ledger-relay"

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness. 503 once SIGTERM arrives so the load balancer drains us."""
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(status_code=503, content={"status": "shutting_down", "service": SERVICE_NAME})
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/ready")
async def readiness_check(settings: Settings = Depends(get_settings)):
    """Readiness gates on the ledger database only.

    The forwarder state is reported for operators but never fails the probe:
    a disabled or unconfigured sink is a valid deployment.
    """
    try:
        database_ok = await ping_db()
    except Exception as e:
        logger.error("readiness_database_failed", error=str(e), error_type=type(e).__name__)
        database_ok = False

    skip_reason = ForwarderConfig.from_settings(settings).skip_reason()
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": "ready" if database_ok else "degraded",
            "checks": {"database": database_ok},
            "forwarder": skip_reason or "enabled",
        },
    )
