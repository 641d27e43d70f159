"""Signed, timeout-bounded delivery of one envelope to the sink.

The client never raises: every outcome, including timeouts and transport
errors, comes back as a DeliveryResult.
"""

import asyncio
import hashlib
import hmac
import json
from dataclasses import dataclass

import httpx
import structlog

from ledger_relay.core.exceptions import ConfigurationError
from ledger_relay.schemas.forwarder import OutboundEnvelope

logger = structlog.get_logger(__name__)

ERROR_MAX_LENGTH = 200


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    status_code: int | None = None
    error: str | None = None


def serialize_envelope(envelope: OutboundEnvelope) -> bytes:
    """Deterministic JSON body: sorted keys, no whitespace."""
    return json.dumps(
        envelope.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def sign_body(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the exact request body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, secret: str, signature: str) -> bool:
    return hmac.compare_digest(sign_body(body, secret), signature)


class DeliveryClient:
    """POSTs envelopes to the sink with an HMAC signature header.

    Args:
        url: Sink ingest URL
        secret: Shared signing secret
        timeout: Deadline in seconds for the whole request, connect to last byte
        signature_header: Header carrying the hex signature
        transport: Optional httpx transport (tests inject httpx.MockTransport)
    """

    def __init__(
        self,
        url: str,
        secret: str,
        timeout: float = 2.0,
        signature_header: str = "x-relay-signature",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url or not secret:
            raise ConfigurationError("DeliveryClient requires both an ingest URL and a signing secret")
        self.url = url
        self._secret = secret
        self.timeout = timeout
        self.signature_header = signature_header
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "DeliveryClient":
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, envelope: OutboundEnvelope) -> DeliveryResult:
        body = serialize_envelope(envelope)
        headers = {
            "Content-Type": "application/json",
            self.signature_header: sign_body(body, self._secret),
        }

        try:
            # Total deadline: httpx timeouts only bound each connect/read/write phase
            async with asyncio.timeout(self.timeout):
                if self._client is not None:
                    response = await self._client.post(self.url, content=body, headers=headers)
                else:
                    async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                        response = await client.post(self.url, content=body, headers=headers)
        except (TimeoutError, httpx.TimeoutException):
            return DeliveryResult(ok=False, error=f"timeout after {self.timeout}s")
        except httpx.HTTPError as exc:
            return DeliveryResult(ok=False, error=_short_error(exc))
        except Exception as exc:
            logger.warning(
                "ledger_delivery_unexpected_error",
                trace_id=envelope.trace_id,
                error_type=type(exc).__name__,
            )
            return DeliveryResult(ok=False, error=_short_error(exc))

        if response.is_success:
            return DeliveryResult(ok=True, status_code=response.status_code)
        return DeliveryResult(ok=False, status_code=response.status_code, error=f"HTTP {response.status_code}")


def _short_error(exc: Exception) -> str:
    message = str(exc) or type(exc).__name__
    return message[:ERROR_MAX_LENGTH]
