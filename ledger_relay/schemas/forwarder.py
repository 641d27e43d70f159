"""Pydantic schemas for the ledger forwarder: wire envelope, run result, health."""

from typing import Any

from pydantic import BaseModel, Field


class OutboundEnvelope(BaseModel):
    """Canonical event shape sent to the observability sink.

    ``payload`` is always the output of the redaction filter.
    """

    source: str
    environment: str
    release: str | None = None
    subject_ids: dict[str, str | None]
    event_key: str
    created_at: str
    trace_id: str
    payload: Any = None


class ForwardResult(BaseModel):
    """Aggregate counts for one forwarding run."""

    ok: bool = True
    skipped: bool = False
    reason: str | None = None
    claim_id: str | None = None
    attempted: int = 0
    forwarded: int = 0
    failed: int = 0
    deadlettered: int = 0
    contended: int = Field(default=0, description="Candidates another worker claimed first")
    stale: int = Field(default=0, description="Outcomes discarded because the lease was lost")


class ForwarderHealth(BaseModel):
    """Backlog snapshot for operators."""

    backlog_unforwarded: int = 0
    backlog_claimed: int = 0
    deadlettered: int = 0
    failed_last_hour: int = 0
    max_attempts_seen: int = 0
    degraded: bool = False
    reasons: list[str] = Field(default_factory=list)
