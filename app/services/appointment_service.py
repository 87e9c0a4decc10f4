"""Appointment service for business logic."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ConflictException,
    DurationException,
    NotFoundException,
    ScheduleConflictException,
    ValidationException,
)
from app.core.redis_client import ScheduleLock
from app.repositories.appointment_repository import AppointmentRepository
from app.schemas.appointments import (
    AppointmentAttend,
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentUpdate,
    CancelledBy,
)
from app.services.conflict_detector import ConflictDetector, appointment_end

logger = structlog.get_logger()

DEFAULT_CANCELLATION_REASON = "Unspecified"


class AppointmentService:
    """Service for managing the appointment lifecycle.

    Status is an open set: any operation may move an appointment to any
    status. Duration bounds and conflict detection are only applied when
    creating an appointment or when an update touches its start time or
    duration. Confirm, reschedule, cancel and mark-attended never run them.
    """

    def __init__(self, db: AsyncSession, schedule_lock: ScheduleLock | None = None):
        """Initialize service with database session and optional day lock."""
        self.repository = AppointmentRepository(db)
        self.detector = ConflictDetector(self.repository)
        self.schedule_lock = schedule_lock

    @staticmethod
    def _to_response(row: dict) -> AppointmentResponse:
        return AppointmentResponse.model_validate({**row, "end_at": appointment_end(row)})

    @staticmethod
    def _validate_duration(duration_minutes: int | None) -> int:
        low = settings.min_appointment_duration
        high = settings.max_appointment_duration
        if duration_minutes is None or not low <= duration_minutes <= high:
            raise DurationException(low, high)
        return duration_minutes

    @asynccontextmanager
    async def _day_guard(self, start_at: datetime) -> AsyncIterator[None]:
        """Serialize check-and-write per day when a lock is configured."""
        if self.schedule_lock is None:
            yield
            return
        async with self.schedule_lock.hold(start_at.date()):
            yield

    async def _ensure_no_conflict(
        self,
        start_at: datetime,
        duration_minutes: int,
        exclude_id: UUID | None = None,
    ) -> None:
        conflict = await self.detector.find_conflict(start_at, duration_minutes, exclude_id)
        if conflict is None:
            return

        conflict_end = appointment_end(conflict)
        logger.info(
            "appointment_conflict_detected",
            candidate_start=start_at.isoformat(),
            duration_minutes=duration_minutes,
            conflicting_id=str(conflict["id"]),
        )
        raise ScheduleConflictException(conflict["id"], conflict["start_at"], conflict_end)

    async def _get_row(self, appointment_id: UUID) -> dict:
        row = await self.repository.find_by_id(appointment_id)
        if not row:
            raise NotFoundException("Appointment not found")
        return row

    async def _apply(self, appointment_id: UUID, values: dict[str, Any]) -> dict:
        row = await self.repository.save(appointment_id, values)
        if not row:
            raise NotFoundException("Appointment not found")
        return row

    async def create_appointment(self, data: AppointmentCreate) -> AppointmentResponse:
        """
        Create a new appointment in pending status.

        Args:
            data: Appointment creation data

        Returns:
            Created appointment

        Raises:
            ValidationException: If the patient does not exist
            DurationException: If the duration is out of range
            ScheduleConflictException: If the window overlaps an active appointment
        """
        if not await self.repository.patient_exists(data.patient_id):
            raise ValidationException("Patient not found")

        duration = self._validate_duration(data.duration_minutes)

        values = {
            "patient_id": data.patient_id,
            "physician_id": data.physician_id,
            "start_at": data.start_at,
            "duration_minutes": duration,
            "reason": data.reason,
            "exam_type": data.exam_type.value,
            "status": AppointmentStatus.PENDING.value,
        }

        async with self._day_guard(data.start_at):
            await self._ensure_no_conflict(data.start_at, duration)
            row = await self.repository.insert(values)

        logger.info(
            "appointment_created",
            appointment_id=str(row["id"]),
            patient_id=str(row["patient_id"]),
            start_at=row["start_at"].isoformat(),
        )
        return self._to_response(row)

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
        """
        return self._to_response(await self._get_row(appointment_id))

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """
        List appointments with filtering and pagination.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Paginated list of appointments, latest start first
        """
        total, rows = await self.repository.find_all(filters)

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[self._to_response(row) for row in rows],
        )

    def _schedule_window(
        self, current: dict, fields: dict[str, Any]
    ) -> tuple[datetime, int] | None:
        """New (start, duration) when an update touches the schedule, else None."""
        if fields.get("start_at") is None and "duration_minutes" not in fields:
            return None

        start_at = fields.get("start_at") or current["start_at"]
        if "duration_minutes" in fields:
            duration = self._validate_duration(fields["duration_minutes"])
        else:
            duration = self._validate_duration(
                current["duration_minutes"] or settings.default_appointment_duration
            )
        return start_at, duration

    async def update_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentUpdate,
    ) -> AppointmentResponse:
        """
        Update an existing appointment.

        Only fields present in the request are applied. Moving the start time
        or changing the duration re-validates the duration and re-runs
        conflict detection against every other appointment of that day.
        The row is read again once the day is guarded, so a start time or
        duration left out of the request is taken from the latest state.

        Args:
            appointment_id: Appointment ID
            data: Update data

        Returns:
            Updated appointment

        Raises:
            NotFoundException: If appointment not found
            ValidationException: If a new patient reference does not resolve
            DurationException: If the duration is out of range
            ScheduleConflictException: If the new window overlaps another appointment
            ConflictException: If the appointment moved to another day meanwhile
        """
        current = await self._get_row(appointment_id)
        fields = data.model_dump(exclude_unset=True)
        values: dict[str, Any] = {}

        window = self._schedule_window(current, fields)

        if fields.get("patient_id") is not None:
            if not await self.repository.patient_exists(fields["patient_id"]):
                raise ValidationException("Patient not found")
            values["patient_id"] = fields["patient_id"]

        if "physician_id" in fields:
            values["physician_id"] = fields["physician_id"]

        if fields.get("exam_type") is not None:
            values["exam_type"] = fields["exam_type"].value

        if fields.get("reason") is not None:
            values["reason"] = fields["reason"]

        status = fields.get("status")
        if status is not None:
            values["status"] = status.value

            if status == AppointmentStatus.ATTENDED:
                values["attended_at"] = datetime.now()

            if status == AppointmentStatus.CANCELLED:
                cancelled_by = fields.get("cancelled_by") or CancelledBy.ADMIN
                values["cancelled_by"] = cancelled_by.value
                values["cancellation_reason"] = (
                    fields.get("cancellation_reason") or DEFAULT_CANCELLATION_REASON
                )

        if "physician_notes" in fields:
            values["physician_notes"] = fields["physician_notes"]

        if window is None:
            if not values:
                # No changes, return current state
                return self._to_response(current)
            row = await self._apply(appointment_id, values)
        else:
            guarded_day = window[0].date()
            async with self._day_guard(window[0]):
                latest = await self._get_row(appointment_id)
                start_at, duration = self._schedule_window(latest, fields) or window
                if start_at.date() != guarded_day:
                    raise ConflictException("Appointment was moved meanwhile, try again")

                await self._ensure_no_conflict(start_at, duration, exclude_id=appointment_id)
                values["start_at"] = start_at
                values["duration_minutes"] = duration
                row = await self._apply(appointment_id, values)

        logger.info(
            "appointment_updated",
            appointment_id=str(appointment_id),
            fields=sorted(values),
        )
        return self._to_response(row)

    async def confirm_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """Mark an appointment as confirmed, whatever its current status."""
        row = await self._apply(
            appointment_id,
            {"status": AppointmentStatus.CONFIRMED.value},
        )
        logger.info("appointment_confirmed", appointment_id=str(appointment_id))
        return self._to_response(row)

    async def reschedule_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentReschedule,
    ) -> AppointmentResponse:
        """
        Move an appointment to a new start time.

        Conflict detection is not run here; callers are expected to have
        checked the new slot. Use update_appointment for a checked move.
        """
        row = await self._apply(
            appointment_id,
            {
                "start_at": data.new_start_at,
                "status": AppointmentStatus.RESCHEDULED.value,
            },
        )
        logger.info(
            "appointment_rescheduled",
            appointment_id=str(appointment_id),
            start_at=data.new_start_at.isoformat(),
        )
        return self._to_response(row)

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentCancel,
    ) -> AppointmentResponse:
        """Cancel an appointment, defaulting the reason and the canceller."""
        cancelled_by = data.cancelled_by or CancelledBy.ADMIN
        row = await self._apply(
            appointment_id,
            {
                "status": AppointmentStatus.CANCELLED.value,
                "cancellation_reason": data.reason or DEFAULT_CANCELLATION_REASON,
                "cancelled_by": cancelled_by.value,
            },
        )
        logger.info(
            "appointment_cancelled",
            appointment_id=str(appointment_id),
            cancelled_by=cancelled_by.value,
        )
        return self._to_response(row)

    async def mark_attended(
        self,
        appointment_id: UUID,
        data: AppointmentAttend,
    ) -> AppointmentResponse:
        """Mark an appointment attended. Repeating it refreshes attended_at."""
        row = await self._apply(
            appointment_id,
            {
                "status": AppointmentStatus.ATTENDED.value,
                "attended_at": datetime.now(),
                "physician_notes": data.notes or None,
            },
        )
        logger.info("appointment_attended", appointment_id=str(appointment_id))
        return self._to_response(row)

    async def delete_appointment(self, appointment_id: UUID) -> None:
        """
        Permanently delete an appointment.

        Raises:
            NotFoundException: If appointment not found
        """
        if not await self.repository.delete_by_id(appointment_id):
            raise NotFoundException("Appointment not found")

        logger.info("appointment_deleted", appointment_id=str(appointment_id))
