from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from clinic_booking.core.lifecycle import TRANSITIONS, is_active, is_terminal
from clinic_booking.core.security import get_current_active_user, require_roles
from clinic_booking.crud.records import delete_service, delete_specialty
from clinic_booking.database import get_db
from clinic_booking.models.appointment import AppointmentStatus
from clinic_booking.models.doctor import Specialty
from clinic_booking.models.room import RoomType
from clinic_booking.models.service import Service
from clinic_booking.models.user import Role, User

router = APIRouter(prefix="/api", tags=["lookups"])


class StatusInfo(BaseModel):
    name: AppointmentStatus
    active: bool
    terminal: bool
    next_statuses: List[AppointmentStatus]


class SpecialtyCreate(BaseModel):
    name: str = Field(..., max_length=100)
    description: Optional[str] = Field(None, max_length=255)


class SpecialtyResponse(SpecialtyCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int


class ServiceCreate(BaseModel):
    code: str = Field(..., max_length=30)
    name: str = Field(..., max_length=150)
    description: Optional[str] = Field(None, max_length=500)
    duration_minutes: int = Field(30, ge=1)
    price: Decimal = Field(Decimal("0.00"), ge=0, max_digits=10, decimal_places=2)


class ServiceResponse(ServiceCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int


@router.get("/lookups/appointment-statuses", response_model=List[StatusInfo])
async def list_appointment_statuses():
    return [
        {
            "name": appointment_status,
            "active": is_active(appointment_status),
            "terminal": is_terminal(appointment_status),
            "next_statuses": sorted(TRANSITIONS[appointment_status], key=list(AppointmentStatus).index),
        }
        for appointment_status in AppointmentStatus
    ]


@router.get("/lookups/roles", response_model=List[Role])
async def list_roles():
    return list(Role)


@router.get("/lookups/room-types", response_model=List[RoomType])
async def list_room_types():
    return list(RoomType)


@router.post("/specialties", response_model=SpecialtyResponse, status_code=status.HTTP_201_CREATED)
async def create_specialty(
    specialty: SpecialtyCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    if db.query(Specialty).filter(Specialty.name == specialty.name).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Specialty already exists"
        )
    db_specialty = Specialty(**specialty.model_dump())
    db.add(db_specialty)
    db.commit()
    db.refresh(db_specialty)
    return db_specialty


@router.get("/specialties", response_model=List[SpecialtyResponse])
async def list_specialties(db: Session = Depends(get_db)):
    return db.query(Specialty).order_by(Specialty.name).all()


@router.delete("/specialties/{specialty_id}")
async def remove_specialty(
    specialty_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN))
):
    specialty = db.get(Specialty, specialty_id)
    if not specialty:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Specialty not found")
    delete_specialty(db, specialty)
    return {"message": "Specialty deleted successfully"}


@router.post("/services", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
async def create_service(
    service: ServiceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    if db.query(Service).filter(Service.code == service.code).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Service code already exists"
        )
    db_service = Service(**service.model_dump())
    db.add(db_service)
    db.commit()
    db.refresh(db_service)
    return db_service


@router.get("/services", response_model=List[ServiceResponse])
async def list_services(db: Session = Depends(get_db)):
    return db.query(Service).order_by(Service.code).all()


@router.delete("/services/{service_id}")
async def remove_service(
    service_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN))
):
    service = db.get(Service, service_id)
    if not service:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Service not found")
    delete_service(db, service)
    return {"message": "Service deleted successfully"}
