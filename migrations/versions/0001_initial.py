"""Doctor directory and weekly schedule tables."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    tables = set(inspector.get_table_names())

    if "doctors" not in tables:
        op.create_table(
            "doctors",
            sa.Column("id", sa.Text(), primary_key=True),
            sa.Column("name", sa.Text(), nullable=False),
            sa.Column("speciality", sa.Text(), nullable=True),
            sa.Column("fee", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.Text(), server_default=sa.text("(datetime('now'))"), nullable=False),
        )

    if "doctor_schedules" not in tables:
        op.create_table(
            "doctor_schedules",
            sa.Column("id", sa.Text(), primary_key=True),
            sa.Column("doctor_id", sa.Text(), nullable=False),
            sa.Column("day_of_week", sa.Integer(), nullable=False),
            sa.Column("is_active", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("start_time", sa.Text(), nullable=False),
            sa.Column("end_time", sa.Text(), nullable=False),
            sa.Column("slot_duration", sa.Integer(), nullable=False, server_default="30"),
            sa.Column("buffer_time", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("break_start", sa.Text(), nullable=True),
            sa.Column("break_end", sa.Text(), nullable=True),
            sa.Column("updated_at", sa.Text(), server_default=sa.text("(datetime('now'))"), nullable=False),
            sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_doctor_schedules_day"),
        )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_doctor_schedules_doctor_day "
        "ON doctor_schedules(doctor_id, day_of_week)"
    )

    if "special_dates" not in tables:
        op.create_table(
            "special_dates",
            sa.Column("id", sa.Text(), primary_key=True),
            sa.Column("date", sa.Text(), nullable=False),
            sa.Column("doctor_id", sa.Text(), nullable=True),
            sa.Column("type", sa.Text(), nullable=False, server_default="UNAVAILABLE"),
            sa.Column("name", sa.Text(), nullable=False),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("break_start", sa.Text(), nullable=True),
            sa.Column("break_end", sa.Text(), nullable=True),
            sa.Column("created_at", sa.Text(), server_default=sa.text("(datetime('now'))"), nullable=False),
        )
    op.execute("CREATE INDEX IF NOT EXISTS idx_special_dates_date ON special_dates(date)")


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_special_dates_date")
    op.drop_table("special_dates")
    op.execute("DROP INDEX IF EXISTS idx_doctor_schedules_doctor_day")
    op.drop_table("doctor_schedules")
    op.drop_table("doctors")
