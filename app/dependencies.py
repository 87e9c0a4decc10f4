"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.redis_client import ScheduleLock, get_schedule_lock
from app.database import get_db
from app.services.appointment_service import AppointmentService


def get_appointment_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    schedule_lock: Annotated[ScheduleLock | None, Depends(get_schedule_lock)],
) -> AppointmentService:
    """
    Build the appointment service for the current request.

    Args:
        db: Database session
        schedule_lock: Day lock, None unless enabled in settings

    Returns:
        Appointment service bound to the request session
    """
    return AppointmentService(db, schedule_lock=schedule_lock)


# Type aliases for dependency injection
Appointments = Annotated[AppointmentService, Depends(get_appointment_service)]
