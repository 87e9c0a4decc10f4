"""Appointment schemas for request/response validation."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    ATTENDED = "attended"


class ExamType(str, Enum):
    """Kind of visit being booked."""

    GENERAL_CONSULT = "general_consult"
    LABORATORY = "laboratory"
    IMAGING = "imaging"
    SPECIALTY = "specialty"


class CancelledBy(str, Enum):
    """Who cancelled an appointment."""

    PATIENT = "patient"
    ADMIN = "admin"
    SYSTEM = "system"


def clean_reason(value: str | None) -> str | None:
    """Strip a reason and reject it when nothing is left."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError("Reason must not be blank")
    return value


def to_wall_clock(value: datetime | None) -> datetime | None:
    """Convert aware datetimes to naive local time; naive values pass through."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class AppointmentBase(BaseModel):
    """Base appointment schema with common fields."""

    patient_id: UUID
    physician_id: UUID | None = None
    start_at: datetime
    reason: str = Field(..., min_length=1, max_length=1000)
    exam_type: ExamType

    @field_validator("start_at")
    @classmethod
    def validate_start_at(cls, v: datetime) -> datetime:
        """Store start times as local wall-clock values."""
        return to_wall_clock(v)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        """Reject blank reasons."""
        return clean_reason(v)


class AppointmentCreate(AppointmentBase):
    """Schema for creating a new appointment."""

    # Range is enforced by the service so it can answer with a DurationException
    duration_minutes: int = 15


class AppointmentUpdate(BaseModel):
    """Schema for updating an existing appointment.

    Only fields present in the request body are applied.
    """

    patient_id: UUID | None = None
    physician_id: UUID | None = None
    start_at: datetime | None = None
    duration_minutes: int | None = None
    reason: str | None = Field(None, min_length=1, max_length=1000)
    exam_type: ExamType | None = None
    status: AppointmentStatus | None = None
    cancelled_by: CancelledBy | None = None
    cancellation_reason: str | None = Field(None, max_length=1000)
    physician_notes: str | None = Field(None, max_length=4000)

    @field_validator("start_at")
    @classmethod
    def validate_start_at(cls, v: datetime | None) -> datetime | None:
        """Store start times as local wall-clock values."""
        return to_wall_clock(v)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str | None) -> str | None:
        """Reject blank reasons; omitting the field leaves it unchanged."""
        return clean_reason(v)


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment to a new start time."""

    new_start_at: datetime

    @field_validator("new_start_at")
    @classmethod
    def validate_new_start_at(cls, v: datetime) -> datetime:
        """Store start times as local wall-clock values."""
        return to_wall_clock(v)


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=1000)
    cancelled_by: CancelledBy | None = None


class AppointmentAttend(BaseModel):
    """Schema for marking an appointment as attended."""

    notes: str | None = Field(None, max_length=4000)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    patient_id: UUID
    physician_id: UUID | None = None
    start_at: datetime
    end_at: datetime
    duration_minutes: int | None = None
    reason: str
    exam_type: ExamType
    status: AppointmentStatus
    cancelled_by: CancelledBy | None = None
    cancellation_reason: str | None = None
    physician_notes: str | None = None
    attended_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    patient_id: UUID | None = None
    physician_id: UUID | None = None
    exam_type: ExamType | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

    @field_validator("from_date", "to_date")
    @classmethod
    def validate_range_bounds(cls, v: datetime | None) -> datetime | None:
        """Compare against stored wall-clock values."""
        return to_wall_clock(v)
