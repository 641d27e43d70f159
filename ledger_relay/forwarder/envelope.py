"""Maps a ledger row onto the outbound envelope."""

from datetime import datetime, timezone

from ledger_relay.core.config import ForwarderConfig
from ledger_relay.db.models.ledger_event import LedgerEvent
from ledger_relay.forwarder.redact import redact
from ledger_relay.schemas.forwarder import OutboundEnvelope

ERROR_CODE_MAX_LENGTH = 100


def _iso(value: datetime) -> str:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def build_envelope(record: LedgerEvent, config: ForwarderConfig) -> OutboundEnvelope:
    """Build the envelope for one claimed row.

    payload and meta are merged with payload winning on collisions; the
    merged map only reaches the envelope after redaction.
    """
    merged: dict = {
        **(record.meta or {}),
        **(record.payload or {}),
        "status": record.status,
        "ui_state": record.ui_state,
        "stage": record.stage,
    }
    if record.error:
        merged["error_code"] = record.error[:ERROR_CODE_MAX_LENGTH]

    return OutboundEnvelope(
        source=config.source,
        environment=config.environment,
        release=config.release or None,
        subject_ids={"deal_id": record.deal_id, "bank_id": record.bank_id},
        event_key=record.event_key or record.stage,
        created_at=_iso(record.created_at),
        trace_id=str(record.id),
        payload=redact(merged),
    )
