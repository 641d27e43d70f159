"""Database package: shared engine and session factory."""

from ledger_relay.db.base import Base, close_db, get_session_factory, init_db, ping_db

__all__ = [
    "Base",
    "close_db",
    "get_session_factory",
    "init_db",
    "ping_db",
]
