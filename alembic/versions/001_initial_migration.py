"""Initial migration - create patients and appointments tables.

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "patients",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("first_names", sa.Text(), nullable=False),
        sa.Column("last_names", sa.Text(), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("patient_id", sa.Uuid(), nullable=False),
        sa.Column("physician_id", sa.Uuid(), nullable=True),
        sa.Column("start_at", sa.DateTime(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), server_default="15", nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("exam_type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), server_default="pending", nullable=False),
        sa.Column("cancelled_by", sa.String(length=16), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("physician_notes", sa.Text(), nullable=True),
        sa.Column("attended_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "duration_minutes IS NULL OR (duration_minutes >= 5 AND duration_minutes <= 120)",
            name="appointments_duration_check",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'rescheduled', 'cancelled', 'attended')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint(
            "exam_type IN ('general_consult', 'laboratory', 'imaging', 'specialty')",
            name="appointments_exam_type_check",
        ),
        sa.CheckConstraint(
            "cancelled_by IS NULL OR cancelled_by IN ('patient', 'admin', 'system')",
            name="appointments_cancelled_by_check",
        ),
        sa.ForeignKeyConstraint(
            ["patient_id"],
            ["patients.id"],
            name="fk_appointments_patient_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index("ix_appointments_patient_id", "appointments", ["patient_id"])
    op.create_index("ix_appointments_physician_id", "appointments", ["physician_id"])
    op.create_index("ix_appointments_start_at_status", "appointments", ["start_at", "status"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("ix_appointments_start_at_status", table_name="appointments")
    op.drop_index("ix_appointments_physician_id", table_name="appointments")
    op.drop_index("ix_appointments_patient_id", table_name="appointments")
    op.drop_table("appointments")
    op.drop_table("patients")
