"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from app.models.base import metadata

# Appointments table. Times are naive local wall-clock values.
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # References
    Column(
        "patient_id",
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("physician_id", Uuid, nullable=True, index=True),
    # Scheduling
    Column("start_at", DateTime(timezone=False), nullable=False),
    Column("duration_minutes", Integer, nullable=True, server_default="15"),
    Column("reason", Text, nullable=False),
    Column("exam_type", String(32), nullable=False),
    # Status management
    Column("status", String(32), nullable=False, server_default="pending"),
    Column("cancelled_by", String(16), nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    Column("physician_notes", Text, nullable=True),
    Column("attended_at", DateTime(timezone=False), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=False), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=False), nullable=False, server_default=func.now()),
    # Constraints
    CheckConstraint(
        "duration_minutes IS NULL OR (duration_minutes >= 5 AND duration_minutes <= 120)",
        name="appointments_duration_check",
    ),
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'rescheduled', 'cancelled', 'attended')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "exam_type IN ('general_consult', 'laboratory', 'imaging', 'specialty')",
        name="appointments_exam_type_check",
    ),
    CheckConstraint(
        "cancelled_by IS NULL OR cancelled_by IN ('patient', 'admin', 'system')",
        name="appointments_cancelled_by_check",
    ),
    Index("ix_appointments_start_at_status", "start_at", "status"),
)
