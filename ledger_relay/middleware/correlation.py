"""Correlation ID middleware for request tracing.

Every trigger request gets an X-Request-ID that is echoed in the response and
merged into every structlog entry emitted while the batch runs.
"""

import uuid

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128


def accept_request_id(value: str) -> bool:
    """Scheduler run ids are free-form; only reject values unsafe to log."""
    return 0 < len(value) <= MAX_REQUEST_ID_LENGTH and value.isprintable()


def setup_correlation_middleware(app: FastAPI) -> None:
    """Echo a caller-supplied X-Request-ID, or generate a UUID when absent or rejected."""
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name=REQUEST_ID_HEADER,
        generator=lambda: str(uuid.uuid4()),
        validator=accept_request_id,
        transformer=lambda a: a,
    )


def get_correlation_id() -> str | None:
    """Current request's correlation ID, or None outside a request."""
    try:
        return correlation_id.get()
    except LookupError:
        return None


__all__ = ["setup_correlation_middleware", "get_correlation_id"]
