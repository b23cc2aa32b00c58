from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from sqlalchemy.orm import Session

from clinic_booking.core.security import get_current_active_user, require_roles
from clinic_booking.crud.appointments import query_appointments
from clinic_booking.crud.records import delete_doctor
from clinic_booking.database import get_db
from clinic_booking.models.doctor import Doctor, Specialty
from clinic_booking.models.user import Role, User
from clinic_booking.routers.appointments import AppointmentResponse
from clinic_booking.routers.lookups import SpecialtyResponse

router = APIRouter(prefix="/api/doctors", tags=["doctors"])


class DoctorCreate(BaseModel):
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    license_number: str = Field(..., max_length=100)
    hire_date: Optional[date] = None
    active: bool = True
    specialty_ids: List[int] = []


class DoctorUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    hire_date: Optional[date] = None
    active: Optional[bool] = None
    specialty_ids: Optional[List[int]] = None

    @field_validator("first_name", "last_name", "active")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class DoctorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    full_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    license_number: str
    hire_date: Optional[date] = None
    active: bool
    specialties: List[SpecialtyResponse] = []


def _load_specialties(db: Session, specialty_ids: List[int]) -> List[Specialty]:
    specialties = db.query(Specialty).filter(Specialty.id.in_(specialty_ids)).all()
    missing = set(specialty_ids) - {specialty.id for specialty in specialties}
    if missing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Specialties not found: {sorted(missing)}"
        )
    return specialties


def _get_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = db.get(Doctor, doctor_id)
    if not doctor:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor not found"
        )
    return doctor


@router.post("", response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
async def create_doctor(
    doctor: DoctorCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    if db.query(Doctor).filter(Doctor.license_number == doctor.license_number).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="License number already registered"
        )

    db_doctor = Doctor(**doctor.model_dump(exclude={"specialty_ids"}))
    db_doctor.specialties = _load_specialties(db, doctor.specialty_ids)
    db.add(db_doctor)
    db.commit()
    db.refresh(db_doctor)
    return db_doctor


@router.get("", response_model=List[DoctorResponse])
async def list_doctors(
    specialty: Optional[str] = None,
    active: Optional[bool] = None,
    db: Session = Depends(get_db)
):
    query = db.query(Doctor)

    if specialty:
        query = query.filter(Doctor.specialties.any(Specialty.name.ilike(f"%{specialty}%")))
    if active is not None:
        query = query.filter(Doctor.active == active)

    return query.order_by(Doctor.last_name, Doctor.first_name).all()


@router.get("/{doctor_id}", response_model=DoctorResponse)
async def get_doctor(
    doctor_id: int,
    db: Session = Depends(get_db)
):
    return _get_doctor(db, doctor_id)


@router.patch("/{doctor_id}", response_model=DoctorResponse)
async def update_doctor(
    doctor_id: int,
    update: DoctorUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    db_doctor = _get_doctor(db, doctor_id)

    changes = update.model_dump(exclude_unset=True)
    specialty_ids = changes.pop("specialty_ids", None)
    for key, value in changes.items():
        setattr(db_doctor, key, value)
    if specialty_ids is not None:
        db_doctor.specialties = _load_specialties(db, specialty_ids)

    db.commit()
    db.refresh(db_doctor)
    return db_doctor


@router.delete("/{doctor_id}")
async def remove_doctor(
    doctor_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN))
):
    delete_doctor(db, _get_doctor(db, doctor_id))
    return {"message": "Doctor deleted successfully"}


@router.get("/{doctor_id}/appointments", response_model=List[AppointmentResponse])
async def get_doctor_appointments(
    doctor_id: int,
    on_date: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    _get_doctor(db, doctor_id)
    return query_appointments(db, doctor_id=doctor_id, on_date=on_date)
