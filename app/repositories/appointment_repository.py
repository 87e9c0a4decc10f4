"""Appointment persistence using SQLAlchemy Core."""

from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from functools import wraps
from typing import Any, ParamSpec, TypeVar
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageException
from app.models.appointments import appointments
from app.models.patients import patients
from app.schemas.appointments import AppointmentFilters

logger = structlog.get_logger()

P = ParamSpec("P")
T = TypeVar("T")


def storage_errors(method: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Roll back and re-raise database failures as StorageException."""

    @wraps(method)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await method(*args, **kwargs)
        except SQLAlchemyError as e:
            repository = args[0]
            await repository.db.rollback()  # type: ignore[attr-defined]
            logger.error("storage_operation_failed", operation=method.__name__, error=str(e))
            raise StorageException(f"Storage operation '{method.__name__}' failed") from e

    return wrapper


class AppointmentRepository:
    """Reads and writes appointment rows."""

    def __init__(self, db: AsyncSession):
        """Initialize repository with database session."""
        self.db = db

    @storage_errors
    async def find_by_id(self, appointment_id: UUID) -> dict | None:
        """Load one appointment, or None when the id does not resolve."""
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        return dict(row) if row else None

    @storage_errors
    async def find_by_day_and_status(
        self,
        day_start: datetime,
        day_end: datetime,
        excluded_statuses: Iterable[str],
        exclude_id: UUID | None = None,
    ) -> list[dict]:
        """
        Appointments starting inside [day_start, day_end].

        Args:
            day_start: First instant of the day
            day_end: Last instant of the day
            excluded_statuses: Status values to leave out
            exclude_id: Appointment to leave out (the one being edited)

        Returns:
            Matching rows ordered by start time
        """
        conditions = [
            appointments.c.start_at >= day_start,
            appointments.c.start_at <= day_end,
        ]

        excluded = list(excluded_statuses)
        if excluded:
            conditions.append(appointments.c.status.not_in(excluded))

        if exclude_id is not None:
            conditions.append(appointments.c.id != exclude_id)

        stmt = select(appointments).where(and_(*conditions)).order_by(appointments.c.start_at)
        result = await self.db.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    @storage_errors
    async def insert(self, values: dict[str, Any]) -> dict:
        """Insert a new appointment and return the stored row."""
        stmt = insert(appointments).values(**values).returning(appointments)
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        await self.db.commit()
        return dict(row)

    @storage_errors
    async def save(self, appointment_id: UUID, values: dict[str, Any]) -> dict | None:
        """Persist changed fields and bump updated_at."""
        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(**values, updated_at=datetime.now())
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        await self.db.commit()
        return dict(row) if row else None

    @storage_errors
    async def delete_by_id(self, appointment_id: UUID) -> bool:
        """Remove the row permanently. Returns False if nothing was deleted."""
        stmt = delete(appointments).where(appointments.c.id == appointment_id)
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount > 0

    @storage_errors
    async def find_all(self, filters: AppointmentFilters) -> tuple[int, list[dict]]:
        """
        List appointments with filtering and pagination.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Total number of matches and the requested page of rows
        """
        conditions = []

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)

        if filters.physician_id:
            conditions.append(appointments.c.physician_id == filters.physician_id)

        if filters.exam_type:
            conditions.append(appointments.c.exam_type == filters.exam_type.value)

        if filters.from_date:
            conditions.append(appointments.c.start_at >= filters.from_date)

        if filters.to_date:
            conditions.append(appointments.c.start_at <= filters.to_date)

        # Count total
        count_stmt = select(func.count()).select_from(appointments).where(and_(True, *conditions))
        total_result = await self.db.execute(count_stmt)
        total = total_result.scalar() or 0

        offset = (filters.page - 1) * filters.page_size

        stmt = (
            select(appointments)
            .where(and_(True, *conditions))
            .order_by(appointments.c.start_at.desc())
            .limit(filters.page_size)
            .offset(offset)
        )
        result = await self.db.execute(stmt)
        return total, [dict(row) for row in result.mappings().all()]

    @storage_errors
    async def patient_exists(self, patient_id: UUID) -> bool:
        """Check that a patient reference resolves."""
        stmt = select(patients.c.id).where(patients.c.id == patient_id)
        result = await self.db.execute(stmt)
        return result.first() is not None
