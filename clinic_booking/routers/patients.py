from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from sqlalchemy import or_
from sqlalchemy.orm import Session

from clinic_booking.core.security import get_current_active_user, require_roles
from clinic_booking.crud.appointments import query_appointments
from clinic_booking.crud.records import delete_patient
from clinic_booking.database import get_db
from clinic_booking.models.medical_record import MedicalRecord
from clinic_booking.models.patient import Gender, Patient
from clinic_booking.models.user import Role, User
from clinic_booking.routers.appointments import AppointmentResponse

router = APIRouter(prefix="/api/patients", tags=["patients"])


class PatientCreate(BaseModel):
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    dob: date
    gender: Gender = Gender.OTHER
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(None, max_length=500)


class PatientUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    dob: Optional[date] = None
    gender: Optional[Gender] = None
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(None, max_length=500)

    @field_validator("first_name", "last_name", "dob", "gender")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class PatientResponse(PatientCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: Optional[str] = None
    created_at: Optional[datetime] = None


class MedicalRecordUpdate(BaseModel):
    record_number: str = Field(..., max_length=100)
    height_cm: Optional[Decimal] = Field(None, gt=0, max_digits=5, decimal_places=2)
    weight_kg: Optional[Decimal] = Field(None, gt=0, max_digits=6, decimal_places=2)
    blood_group: Optional[str] = Field(None, max_length=5)
    allergies: Optional[str] = Field(None, max_length=1000)
    chronic_conditions: Optional[str] = Field(None, max_length=1000)


class MedicalRecordResponse(MedicalRecordUpdate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    created_at: Optional[datetime] = None


def _ensure_unique_contact(
    db: Session,
    email: Optional[str],
    phone: Optional[str],
    patient_id: Optional[int] = None
):
    if not (email and phone):
        return
    query = db.query(Patient).filter(Patient.email == email, Patient.phone == phone)
    if patient_id is not None:
        query = query.filter(Patient.id != patient_id)
    if query.first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A patient with this email and phone already exists"
        )


def _get_patient(db: Session, patient_id: int) -> Patient:
    patient = db.get(Patient, patient_id)
    if not patient:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Patient not found"
        )
    return patient


@router.post("", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(
    patient: PatientCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    _ensure_unique_contact(db, patient.email, patient.phone)

    db_patient = Patient(**patient.model_dump())
    db.add(db_patient)
    db.commit()
    db.refresh(db_patient)
    return db_patient


@router.get("", response_model=List[PatientResponse])
async def list_patients(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    query = db.query(Patient)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Patient.first_name.ilike(pattern), Patient.last_name.ilike(pattern)))
    return query.order_by(Patient.last_name, Patient.first_name).all()


@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient(
    patient_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    return _get_patient(db, patient_id)


@router.patch("/{patient_id}", response_model=PatientResponse)
async def update_patient(
    patient_id: int,
    update: PatientUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    db_patient = _get_patient(db, patient_id)

    changes = update.model_dump(exclude_unset=True)
    _ensure_unique_contact(
        db,
        changes.get("email", db_patient.email),
        changes.get("phone", db_patient.phone),
        patient_id=patient_id,
    )
    for key, value in changes.items():
        setattr(db_patient, key, value)

    db.commit()
    db.refresh(db_patient)
    return db_patient


@router.delete("/{patient_id}")
async def remove_patient(
    patient_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN))
):
    removed = delete_patient(db, _get_patient(db, patient_id))
    return {"message": "Patient deleted successfully", "appointments_deleted": removed}


@router.get("/{patient_id}/appointments", response_model=List[AppointmentResponse])
async def get_patient_appointments(
    patient_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    _get_patient(db, patient_id)
    return query_appointments(db, patient_id=patient_id)


@router.get("/{patient_id}/medical-record", response_model=MedicalRecordResponse)
async def get_medical_record(
    patient_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    patient = _get_patient(db, patient_id)
    if patient.medical_record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Medical record not found"
        )
    return patient.medical_record


@router.put("/{patient_id}/medical-record", response_model=MedicalRecordResponse)
async def put_medical_record(
    patient_id: int,
    record: MedicalRecordUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Create the patient's medical record, or replace its contents."""
    patient = _get_patient(db, patient_id)

    taken = db.query(MedicalRecord).filter(
        MedicalRecord.record_number == record.record_number,
        MedicalRecord.patient_id != patient_id
    ).first()
    if taken:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Record number already in use"
        )

    db_record = patient.medical_record
    if db_record is None:
        db_record = MedicalRecord(patient_id=patient_id)
        db.add(db_record)
    for key, value in record.model_dump().items():
        setattr(db_record, key, value)

    db.commit()
    db.refresh(db_record)
    return db_record
