"""Notifier port for out-of-band forwarder signals (degraded health, etc.)."""

from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    """Receives operator-facing signals. Implementations must not raise."""

    async def notify(self, event_key: str, payload: dict[str, Any]) -> None: ...


class LogNotifier:
    """Default notifier: emits the signal as a structured warning log."""

    async def notify(self, event_key: str, payload: dict[str, Any]) -> None:
        logger.warning("forwarder_signal", event_key=event_key, **payload)


class NullNotifier:
    """Drops every signal."""

    async def notify(self, event_key: str, payload: dict[str, Any]) -> None:
        return None
