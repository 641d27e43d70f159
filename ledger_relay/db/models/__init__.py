"""Re-export all models so Base.metadata sees them."""

from ledger_relay.db.models.ledger_event import LedgerEvent

__all__ = [
    "LedgerEvent",
]
