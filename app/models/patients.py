"""Patient model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, String, Table, Text, Uuid, func

from app.models.base import metadata

# Owned by the patient registry; scheduling only reads it.
patients = Table(
    "patients",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("first_names", Text, nullable=False),
    Column("last_names", Text, nullable=False),
    Column("phone", String(20)),
    Column("created_at", DateTime(timezone=False), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=False), nullable=False, server_default=func.now()),
)
