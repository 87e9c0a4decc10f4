"""Database models."""

from app.models.appointments import appointments
from app.models.base import metadata
from app.models.patients import patients

__all__ = [
    "appointments",
    "metadata",
    "patients",
]
