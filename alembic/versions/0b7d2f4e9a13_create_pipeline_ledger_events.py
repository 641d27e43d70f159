"""create pipeline_ledger_events with forwarding columns

Revision ID: 0b7d2f4e9a13
Revises:
Create Date: 2026-10-12 10:24:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0b7d2f4e9a13"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the ledger table and the pending-forward index."""
    op.create_table(
        "pipeline_ledger_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("deal_id", sa.String(length=255), nullable=False),
        sa.Column("bank_id", sa.String(length=255), nullable=True),
        sa.Column("event_key", sa.String(length=255), nullable=True),
        sa.Column("stage", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("ui_state", sa.String(length=50), nullable=True),
        sa.Column("ui_message", sa.Text(), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("meta", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("forwarded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claim_id", sa.String(length=64), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("forward_error", sa.Text(), nullable=True),
        sa.Column("deadletter_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        # claimed_at and claim_id are always set or cleared together
        sa.CheckConstraint(
            "(claimed_at IS NULL) = (claim_id IS NULL)",
            name="ck_pipeline_ledger_events_claim_pair",
        ),
    )
    op.create_index("ix_pipeline_ledger_events_deal_id", "pipeline_ledger_events", ["deal_id"])
    op.create_index("ix_pipeline_ledger_events_created_at", "pipeline_ledger_events", ["created_at"])
    op.create_index(
        "ix_ledger_forward_pending",
        "pipeline_ledger_events",
        ["forwarded_at", "deadletter_at", "claimed_at", "created_at"],
    )


def downgrade() -> None:
    """Drop the ledger table."""
    op.drop_index("ix_ledger_forward_pending", table_name="pipeline_ledger_events")
    op.drop_index("ix_pipeline_ledger_events_created_at", table_name="pipeline_ledger_events")
    op.drop_index("ix_pipeline_ledger_events_deal_id", table_name="pipeline_ledger_events")
    op.drop_table("pipeline_ledger_events")
