"""Same-day overlap detection for appointment windows.

Appointments occupy the half-open interval ``[start_at, start_at + duration)``.
Conflicts are only looked for among active (not cancelled) appointments that
start on the same calendar day as the candidate.
"""

from datetime import datetime, time, timedelta
from uuid import UUID

from app.repositories.appointment_repository import AppointmentRepository
from app.schemas.appointments import AppointmentStatus

# Legacy rows may lack a duration
FALLBACK_DURATION_MINUTES = 15


def day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """First and last instant of the calendar day containing ``moment``."""
    day = moment.date()
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def appointment_end(appointment: dict) -> datetime:
    """End of an appointment's window."""
    duration = appointment.get("duration_minutes") or FALLBACK_DURATION_MINUTES
    return appointment["start_at"] + timedelta(minutes=duration)


def intervals_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """
    Whether two half-open windows overlap.

    Covers window A starting inside B, ending inside B, or containing B.
    Windows that only touch at an endpoint do not overlap.
    """
    return (
        (start_b <= start_a < end_b)
        or (start_b < end_a <= end_b)
        or (start_a <= start_b and end_a >= end_b)
    )


class ConflictDetector:
    """Finds the first active appointment overlapping a candidate window."""

    def __init__(self, repository: AppointmentRepository):
        """Initialize detector with the appointment repository."""
        self.repository = repository

    async def find_conflict(
        self,
        candidate_start: datetime,
        duration_minutes: int,
        exclude_id: UUID | None = None,
    ) -> dict | None:
        """
        Look for an appointment that overlaps the candidate window.

        Args:
            candidate_start: Proposed start time
            duration_minutes: Proposed length
            exclude_id: Appointment to ignore, used when editing it

        Returns:
            The first overlapping appointment, or None
        """
        candidate_end = candidate_start + timedelta(minutes=duration_minutes)
        day_start, day_end = day_bounds(candidate_start)

        same_day = await self.repository.find_by_day_and_status(
            day_start,
            day_end,
            excluded_statuses=[AppointmentStatus.CANCELLED.value],
            exclude_id=exclude_id,
        )

        for existing in same_day:
            if intervals_overlap(
                candidate_start,
                candidate_end,
                existing["start_at"],
                appointment_end(existing),
            ):
                return existing

        return None
