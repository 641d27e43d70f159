from fastapi import APIRouter

from ledger_relay.api.routes import health, relay

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(relay.router, prefix="/relay", tags=["relay"])
