"""Bearer-secret guards for the forwarder trigger routes.

Secrets only travel in the Authorization header, never in query params, so
they stay out of access logs and scheduler URLs.
"""

import hmac

from fastapi import Depends, Header, HTTPException

from ledger_relay.core.config import Settings, get_settings


def _bearer_matches(authorization: str | None, expected: str) -> bool:
    # An unset secret locks the route instead of opening it
    if not expected or not authorization:
        return False
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return hmac.compare_digest(token.strip().encode("utf-8"), expected.encode("utf-8"))


async def require_forwarder_token(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Manual trigger and health: Authorization: Bearer <RELAY_FORWARDER_TOKEN>."""
    if not _bearer_matches(authorization, settings.relay_forwarder_token):
        raise HTTPException(status_code=401, detail="Unauthorized")


async def require_cron_secret(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Scheduler trigger: Authorization: Bearer <CRON_SECRET>."""
    if not _bearer_matches(authorization, settings.cron_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")
