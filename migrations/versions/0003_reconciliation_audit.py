"""Append-only audit trail for duplicate reconciliation."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0003_reconciliation_audit"
down_revision = "0002_appointments"
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if "reconciliation_audit" not in inspector.get_table_names():
        op.create_table(
            "reconciliation_audit",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("pass_name", sa.Text(), nullable=False),
            sa.Column("group_key", sa.Text(), nullable=False),
            sa.Column("kept_id", sa.Text(), nullable=True),
            sa.Column("deleted_ids_json", sa.Text(), nullable=False, server_default="[]"),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("ts", sa.Text(), nullable=False),
        )
    op.execute("CREATE INDEX IF NOT EXISTS idx_reconciliation_audit_ts ON reconciliation_audit(ts)")


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_reconciliation_audit_ts")
    op.drop_table("reconciliation_audit")
