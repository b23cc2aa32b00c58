"""
Deletes for clinic records.

Every cascade is spelled out here instead of being left to ``ON DELETE``
clauses, so the same rules hold whatever engine sits underneath.
"""

import logging

from sqlalchemy.orm import Session

from clinic_booking.config import settings
from clinic_booking.core.exceptions import ConflictException
from clinic_booking.core.security import get_password_hash
from clinic_booking.models.appointment import Appointment
from clinic_booking.models.doctor import Doctor, Specialty
from clinic_booking.models.medical_record import MedicalRecord
from clinic_booking.models.patient import Patient
from clinic_booking.models.room import Room
from clinic_booking.models.service import AppointmentService, Service
from clinic_booking.models.user import Role, User

logger = logging.getLogger(__name__)


def delete_patient(db: Session, patient: Patient) -> int:
    """Delete a patient together with their appointments and medical record.

    Returns how many appointments went.
    """
    patient_id = patient.id
    db.query(MedicalRecord).filter(MedicalRecord.patient_id == patient.id).delete(synchronize_session="fetch")
    appointments = db.query(Appointment).filter(Appointment.patient_id == patient.id).all()
    for appointment in appointments:
        db.delete(appointment)
    db.flush()
    db.expire(patient, ["appointments", "medical_record"])
    db.delete(patient)
    db.commit()
    logger.info("Deleted patient %s and %d appointments", patient_id, len(appointments))
    return len(appointments)


def delete_doctor(db: Session, doctor: Doctor) -> None:
    doctor_id = doctor.id
    booked = db.query(Appointment).filter(Appointment.doctor_id == doctor.id).count()
    if booked:
        raise ConflictException(
            f"Doctor {doctor.id} still has {booked} appointments",
            details={"doctor_id": doctor.id, "appointments": booked},
        )
    doctor.specialties.clear()
    db.delete(doctor)
    db.commit()
    logger.info("Deleted doctor %s", doctor_id)


def delete_room(db: Session, room: Room) -> int:
    """Delete a room and unassign it from its appointments. Returns how many were unassigned."""
    room_id = room.id
    unassigned = db.query(Appointment).filter(Appointment.room_id == room.id).update(
        {Appointment.room_id: None}, synchronize_session="fetch"
    )
    db.delete(room)
    db.commit()
    logger.info("Deleted room %s, unassigned from %d appointments", room_id, unassigned)
    return unassigned


def delete_service(db: Session, service: Service) -> None:
    used = db.query(AppointmentService).filter(AppointmentService.service_id == service.id).count()
    if used:
        raise ConflictException(
            f"Service {service.code} is attached to {used} appointments",
            details={"service_id": service.id, "appointments": used},
        )
    db.delete(service)
    db.commit()


def delete_specialty(db: Session, specialty: Specialty) -> None:
    if specialty.doctors:
        raise ConflictException(
            f"Specialty {specialty.name} is assigned to {len(specialty.doctors)} doctors",
            details={"specialty_id": specialty.id},
        )
    db.delete(specialty)
    db.commit()


def ensure_admin_user(db: Session):
    """Create the configured admin account if it does not exist yet."""
    username = settings.BOOTSTRAP_ADMIN_USERNAME
    email = settings.BOOTSTRAP_ADMIN_EMAIL
    password = settings.BOOTSTRAP_ADMIN_PASSWORD
    if not (username and email and password):
        return None

    user = db.query(User).filter(User.username == username).first()
    if user:
        return user

    user = User(
        username=username,
        email=email,
        hashed_password=get_password_hash(password),
        role=Role.ADMIN,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created bootstrap admin user %s", username)
    return user
