"""Custom application exceptions."""

from datetime import datetime
from uuid import UUID


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class DurationException(BadRequestException):
    """Appointment duration outside the allowed range."""

    def __init__(self, minimum: int, maximum: int):
        """Initialize with the allowed bounds."""
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(f"Duration must be between {minimum} and {maximum} minutes")


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ScheduleConflictException(ConflictException):
    """Proposed window overlaps an active appointment."""

    def __init__(self, appointment_id: UUID, start_at: datetime, end_at: datetime):
        """Keep the conflicting window for the response message."""
        self.appointment_id = appointment_id
        self.start_at = start_at
        self.end_at = end_at
        super().__init__(
            "Schedule conflict with another appointment "
            f"({start_at:%H:%M} - {end_at:%H:%M}). Edit it or choose another time."
        )


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class StorageException(AppException):
    """Persistence layer failure."""

    def __init__(self, message: str = "Storage unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)
