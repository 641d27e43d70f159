"""LedgerEvent model: pipeline ledger rows plus their forwarding state."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from ledger_relay.db.base import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class LedgerEvent(Base):
    __tablename__ = "pipeline_ledger_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)  # doubles as trace_id

    # Subject ids, carried through unchanged
    deal_id = Column(String(255), nullable=False, index=True)
    bank_id = Column(String(255), nullable=True)

    # Producer classification
    event_key = Column(String(255), nullable=True)
    stage = Column(String(100), nullable=False)
    status = Column(String(50), nullable=False)
    ui_state = Column(String(50), nullable=True)
    ui_message = Column(Text, nullable=True)  # never forwarded

    payload = Column(JSONType, nullable=True)
    meta = Column(JSONType, nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)

    # Forwarding state, written only by the forwarder
    forwarded_at = Column(DateTime(timezone=True), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    claim_id = Column(String(64), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    forward_error = Column(Text, nullable=True)
    deadletter_at = Column(DateTime(timezone=True), nullable=True)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # Candidate scan: unforwarded, live rows oldest first
        Index("ix_ledger_forward_pending", "forwarded_at", "deadletter_at", "claimed_at", "created_at"),
    )
