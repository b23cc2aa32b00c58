from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from clinic_booking.core.conflicts import DecisionKind
from clinic_booking.core.security import get_current_active_user, require_roles
from clinic_booking.crud import appointments as crud
from clinic_booking.database import get_db
from clinic_booking.models.appointment import AppointmentStatus
from clinic_booking.models.user import Role, User

router = APIRouter(prefix="/api/appointments", tags=["appointments"])


class ServiceLine(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    service_id: int
    qty: int = Field(1, ge=1)


class AppointmentCreate(BaseModel):
    patient_id: int
    doctor_id: int
    room_id: Optional[int] = None
    scheduled_start: datetime
    scheduled_end: Optional[datetime] = None
    reason: Optional[str] = Field(None, max_length=500)
    services: List[ServiceLine] = []


class BookingCheck(BaseModel):
    doctor_id: int
    room_id: Optional[int] = None
    scheduled_start: datetime
    scheduled_end: datetime
    appointment_id: Optional[int] = None


class AppointmentReschedule(BaseModel):
    scheduled_start: datetime
    scheduled_end: Optional[datetime] = None
    doctor_id: Optional[int] = None
    room_id: Optional[int] = None


class StatusUpdate(BaseModel):
    status: AppointmentStatus


class ConflictResponse(BaseModel):
    appointment_id: int
    doctor_id: int
    room_id: Optional[int] = None
    scheduled_start: datetime
    scheduled_end: datetime


class DecisionResponse(BaseModel):
    accepted: bool
    kind: DecisionKind
    message: str
    conflict: Optional[ConflictResponse] = None
    warnings: List[str] = []


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: int
    room_id: Optional[int] = None
    scheduled_start: datetime
    scheduled_end: datetime
    status: AppointmentStatus
    reason: Optional[str] = None
    created_by: int
    created_at: Optional[datetime] = None
    services: List[ServiceLine] = []


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    appointment: AppointmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    return crud.book_appointment(
        db,
        patient_id=appointment.patient_id,
        doctor_id=appointment.doctor_id,
        room_id=appointment.room_id,
        start=appointment.scheduled_start,
        end=appointment.scheduled_end,
        reason=appointment.reason,
        services=[(line.service_id, line.qty) for line in appointment.services],
        created_by=current_user.id,
    )


@router.post("/validate", response_model=DecisionResponse)
async def validate_appointment(
    check: BookingCheck,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Dry run: report whether the slot could be booked right now without booking it."""
    decision = crud.check_booking(
        db,
        check.doctor_id,
        check.scheduled_start,
        check.scheduled_end,
        room_id=check.room_id,
        appointment_id=check.appointment_id,
    )
    return decision.as_dict()


@router.get("", response_model=List[AppointmentResponse])
async def list_appointments(
    doctor_id: Optional[int] = None,
    room_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    appointment_status: Optional[AppointmentStatus] = Query(None, alias="status"),
    on_date: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    return crud.query_appointments(
        db,
        doctor_id=doctor_id,
        room_id=room_id,
        patient_id=patient_id,
        status=appointment_status,
        on_date=on_date,
    )


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    return crud.get_appointment_or_404(db, appointment_id)


@router.put("/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: int,
    update: StatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    appointment = crud.get_appointment_or_404(db, appointment_id)
    return crud.update_status(db, appointment, update.status)


@router.post("/{appointment_id}/check-in", response_model=AppointmentResponse)
async def check_in_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    appointment = crud.get_appointment_or_404(db, appointment_id)
    return crud.check_in(db, appointment)


@router.put("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    update: AppointmentReschedule,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    appointment = crud.get_appointment_or_404(db, appointment_id)
    # an omitted room keeps the current one; an explicit null clears it
    room_id = update.room_id if "room_id" in update.model_fields_set else appointment.room_id
    return crud.reschedule_appointment(
        db,
        appointment,
        start=update.scheduled_start,
        end=update.scheduled_end,
        doctor_id=update.doctor_id,
        room_id=room_id,
    )


@router.delete("/{appointment_id}")
async def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN))
):
    appointment = crud.get_appointment_or_404(db, appointment_id)
    crud.delete_appointment(db, appointment)
    return {"message": "Appointment deleted successfully"}
