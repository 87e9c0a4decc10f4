"""Appointment endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import Appointments
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
    ExamType,
)

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Create new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    service: Appointments,
) -> AppointmentResponse:
    """
    Create a new appointment in pending status.

    Args:
        data: Appointment creation data
        service: Appointment service

    Returns:
        Created appointment
    """
    return await service.create_appointment(data)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    service: Appointments,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    patient_id: UUID | None = Query(None),
    physician_id: UUID | None = Query(None),
    exam_type: ExamType | None = Query(None),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments with filtering.

    Args:
        service: Appointment service
        status_filter: Filter by status
        patient_id: Filter by patient ID
        physician_id: Filter by physician ID
        exam_type: Filter by exam type
        from_date: Earliest start time (inclusive)
        to_date: Latest start time (inclusive)
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(
        status=status_filter,
        patient_id=patient_id,
        physician_id=physician_id,
        exam_type=exam_type,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )
    return await service.list_appointments(filters)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    service: Appointments,
) -> AppointmentResponse:
    """Get a specific appointment by ID."""
    return await service.get_appointment(appointment_id)


@router.put(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    service: Appointments,
) -> AppointmentResponse:
    """
    Update an existing appointment.

    Changing start time or duration re-checks the schedule for conflicts.

    Args:
        appointment_id: Appointment ID
        data: Update data
        service: Appointment service

    Returns:
        Updated appointment
    """
    return await service.update_appointment(appointment_id, data)


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Appointments"],
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: UUID,
    service: Appointments,
) -> None:
    """Permanently delete an appointment."""
    await service.delete_appointment(appointment_id)


@router.patch(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Confirm appointment",
)
async def confirm_appointment(
    appointment_id: UUID,
    service: Appointments,
) -> AppointmentResponse:
    """Confirm an appointment."""
    return await service.confirm_appointment(appointment_id)


@router.patch(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    service: Appointments,
) -> AppointmentResponse:
    """
    Move an appointment to a new start time.

    The new slot is not checked for conflicts.
    """
    return await service.reschedule_appointment(appointment_id, data)


@router.patch(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    service: Appointments,
    data: AppointmentCancel | None = None,
) -> AppointmentResponse:
    """Cancel an appointment. Reason and canceller default when omitted."""
    return await service.cancel_appointment(appointment_id, data or AppointmentCancel())


@router.patch(
    "/{appointment_id}/attended",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark appointment attended",
)
async def mark_attended(
    appointment_id: UUID,
    service: Appointments,
    data: AppointmentAttend | None = None,
) -> AppointmentResponse:
    """Mark an appointment as attended, optionally with physician notes."""
    return await service.mark_attended(appointment_id, data or AppointmentAttend())
