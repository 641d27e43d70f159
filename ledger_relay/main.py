"""Ledger Relay: FastAPI application entry point.

Serves the forwarder trigger routes. The scheduler calls the cron route, and
operators call the manual route and the health route.
"""

import signal
import uuid
from contextlib import asynccontextmanager

# Logging goes first: structlog caches the processor chain on first use
from ledger_relay.core.config import get_settings as _get_settings_early
from ledger_relay.core.logging import configure_structlog

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
    environment=_early_settings.relay_env,
    release=_early_settings.relay_release or None,
)

import structlog

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from ledger_relay.api.routes import api_router
from ledger_relay.core.config import ForwarderConfig, Settings, get_settings
from ledger_relay.db import close_db, init_db
from ledger_relay.middleware.correlation import get_correlation_id, setup_correlation_middleware

logger = structlog.get_logger(__name__)


def log_forwarder_posture(settings: Settings) -> None:
    """Say at startup whether runs will forward, no-op, or be unreachable."""
    config = ForwarderConfig.from_settings(settings)
    logger.info(
        "forwarder_config",
        skip_reason=config.skip_reason(),
        environment=config.environment,
        max_attempts=config.max_attempts,
        batch_ceiling=config.batch_ceiling,
        claim_ttl_seconds=int(config.claim_ttl.total_seconds()),
    )
    if not settings.relay_forwarder_token:
        logger.warning("forwarder_token_unset", routes="forward-ledger, forward-ledger/health")
    if not settings.cron_secret:
        logger.warning("cron_secret_unset", routes="cron-forward-ledger")


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)
    log_forwarder_posture(settings)

    await init_db()
    logger.info("db_initialized")

    yield

    await close_db()
    logger.info("shutdown_complete")


def _error_response(request: Request, status_code: int, detail, event: str, **log_fields) -> JSONResponse:
    debug_id = str(uuid.uuid4())
    logger.error(
        event,
        status_code=status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        **log_fields,
    )
    return JSONResponse(status_code=status_code, content={"detail": detail, "debug_id": debug_id})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTPException with a debug_id; the detail is already client-safe."""
    return _error_response(request, exc.status_code, exc.detail, "http_exception", error_detail=exc.detail)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled error: full traceback in the log, generic 500 to the caller."""
    return _error_response(
        request,
        500,
        "Internal server error",
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Forwards redacted pipeline ledger events to the observability sink",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    setup_correlation_middleware(app)

    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("ledger_relay.main:app", host="0.0.0.0", port=8000)
