"""Create faucet policy, quota and transfer tables.

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3f1c9a7d2b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the three faucet tables."""

    op.create_table(
        "faucet_policy",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("default_request_limit", sa.Numeric(20, 6), nullable=False),
        sa.Column("default_account_limit", sa.Numeric(20, 6), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "account_quotas",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("account", sa.String(length=255), nullable=False),
        sa.Column("account_limit", sa.Numeric(20, 6), nullable=True),
        sa.Column("request_limit", sa.Numeric(20, 6), nullable=True),
        sa.Column("spent", sa.Numeric(20, 6), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_account_quotas_account", "account_quotas", ["account"], unique=True)

    op.create_table(
        "faucet_transfers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("direction", sa.String(length=20), nullable=False),
        sa.Column("account", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(20, 6), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=True),
        sa.Column("request_hash", sa.String(length=64), nullable=True),
        sa.Column("tx_hash", sa.String(length=255), nullable=True),
        sa.Column("ledger_index", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("spent_after", sa.Numeric(20, 6), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_faucet_transfers_account", "faucet_transfers", ["account"])
    op.create_index(
        "ix_faucet_transfers_idempotency_key",
        "faucet_transfers",
        ["idempotency_key"],
        unique=True,
    )
    op.create_index("ix_faucet_transfers_created_at", "faucet_transfers", ["created_at"])


def downgrade() -> None:
    """Drop the faucet tables."""

    op.drop_table("faucet_transfers")
    op.drop_table("account_quotas")
    op.drop_table("faucet_policy")
