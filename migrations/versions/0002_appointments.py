"""Appointments with a one-booking-per-slot guard."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0002_appointments"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if "appointments" not in inspector.get_table_names():
        op.create_table(
            "appointments",
            sa.Column("id", sa.Text(), primary_key=True),
            sa.Column("doctor_id", sa.Text(), nullable=False),
            sa.Column("patient_name", sa.Text(), nullable=False),
            sa.Column("email", sa.Text(), nullable=True),
            sa.Column("phone", sa.Text(), nullable=True),
            sa.Column("date", sa.Text(), nullable=False),
            sa.Column("time", sa.Text(), nullable=False),
            sa.Column("time_slot", sa.Text(), nullable=True),
            sa.Column("status", sa.Text(), server_default="SCHEDULED", nullable=False),
            sa.Column("customer_id", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.Text(), nullable=False),
            sa.Column("updated_at", sa.Text(), nullable=False),
            sa.CheckConstraint(
                "status IN ('SCHEDULED','CONFIRMED','COMPLETED','CANCELLED','NO_SHOW')",
                name="ck_appointments_status",
            ),
        )
    # Cancelled rows release their slot; every other status holds it.
    clashes = bind.execute(
        sa.text(
            "SELECT 1 FROM appointments WHERE status <> 'CANCELLED' "
            "GROUP BY doctor_id, date, time HAVING COUNT(*) > 1 LIMIT 1"
        )
    ).first()
    if clashes is None:
        op.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_appointments_active_slot "
            "ON appointments(doctor_id, date, time) WHERE status <> 'CANCELLED'"
        )
    op.execute("CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date ON appointments(doctor_id, date)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_appointments_status ON appointments(status)")


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_appointments_status")
    op.execute("DROP INDEX IF EXISTS idx_appointments_doctor_date")
    op.execute("DROP INDEX IF EXISTS idx_appointments_active_slot")
    op.drop_table("appointments")
