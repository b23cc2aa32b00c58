"""
Booking workflow on top of the conflict validator.

Loads the active appointments that can collide with a candidate, runs
``validate_booking`` and writes the appointment inside one transaction that
holds row locks on the doctor and the room. SQLite has no row locks, so there
the in-process booking lock for the doctor and room on the affected days is
taken instead.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Query, Session

from clinic_booking.config import settings
from clinic_booking.core.conflicts import (
    BookingCandidate,
    BookingDecision,
    ExistingAppointment,
    validate_booking,
)
from clinic_booking.core.exceptions import (
    BookingRejected,
    BusinessRuleException,
    NotFoundException,
    ValidationException,
)
from clinic_booking.core.lifecycle import ensure_transition
from clinic_booking.core.locks import booking_lock
from clinic_booking.models.appointment import ACTIVE_STATUSES, Appointment, AppointmentStatus
from clinic_booking.models.doctor import Doctor
from clinic_booking.models.patient import Patient
from clinic_booking.models.room import Room
from clinic_booking.models.service import AppointmentService, Service

logger = logging.getLogger(__name__)

# (service_id, qty)
ServiceLine = Tuple[int, int]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Stored times are naive UTC; aware inputs are converted, naive ones kept."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def day_window(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
    """Midnight before ``start`` to the midnight that closes the day ``end`` falls in."""
    window_start = datetime.combine(start.date(), time.min)
    window_end = datetime.combine(end.date(), time.min)
    if window_end < end or window_end <= window_start:
        window_end += timedelta(days=1)
    return window_start, window_end


def active_appointments_for_doctor(
    db: Session,
    doctor_id: int,
    window_start: datetime,
    window_end: datetime
) -> List[Appointment]:
    return db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.status.in_(list(ACTIVE_STATUSES)),
        Appointment.scheduled_start < window_end,
        Appointment.scheduled_end > window_start
    ).order_by(Appointment.scheduled_start).all()


def active_appointments_for_room(
    db: Session,
    room_id: int,
    window_start: datetime,
    window_end: datetime
) -> List[Appointment]:
    return db.query(Appointment).filter(
        Appointment.room_id == room_id,
        Appointment.status.in_(list(ACTIVE_STATUSES)),
        Appointment.scheduled_start < window_end,
        Appointment.scheduled_end > window_start
    ).order_by(Appointment.scheduled_start).all()


def get_doctor_or_404(db: Session, doctor_id: int) -> Doctor:
    doctor = db.get(Doctor, doctor_id)
    if doctor is None:
        raise NotFoundException(f"Doctor {doctor_id} not found", details={"doctor_id": doctor_id})
    return doctor


def get_room_or_404(db: Session, room_id: int) -> Room:
    room = db.get(Room, room_id)
    if room is None:
        raise NotFoundException(f"Room {room_id} not found", details={"room_id": room_id})
    return room


def doctor_row_for_update(db: Session, doctor_id: int) -> Query:
    return db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update()


def room_row_for_update(db: Session, room_id: int) -> Query:
    return db.query(Room).filter(Room.id == room_id).with_for_update()


def lock_booking_rows(db: Session, doctor_id: int, room_id: Optional[int] = None) -> None:
    """Lock the doctor row, then the room row, until the transaction ends.

    Every booking takes them in that order, so two bookings cannot deadlock.
    """
    if doctor_row_for_update(db, doctor_id).first() is None:
        raise NotFoundException(f"Doctor {doctor_id} not found", details={"doctor_id": doctor_id})
    if room_id is not None and room_row_for_update(db, room_id).first() is None:
        raise NotFoundException(f"Room {room_id} not found", details={"room_id": room_id})


def uses_process_lock(db: Session) -> bool:
    return db.get_bind().dialect.name == "sqlite"


@contextmanager
def booking_guard(
    db: Session,
    doctor_id: int,
    room_id: Optional[int],
    start: datetime,
    end: datetime
) -> Iterator[None]:
    """Serialize check-then-write for a doctor and room.

    Row locks are released by the commit or rollback that ends the caller's
    transaction; any exception rolls back so the locks do not linger.
    """
    try:
        if uses_process_lock(db):
            with booking_lock(doctor_id, room_id, start, end):
                yield
        else:
            lock_booking_rows(db, doctor_id, room_id)
            yield
    except BaseException:
        db.rollback()
        raise


def get_appointment_or_404(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundException(
            f"Appointment {appointment_id} not found",
            details={"appointment_id": appointment_id},
        )
    return appointment


def query_appointments(
    db: Session,
    doctor_id: Optional[int] = None,
    room_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    status: Optional[AppointmentStatus] = None,
    on_date: Optional[date] = None
) -> List[Appointment]:
    query = db.query(Appointment)
    if doctor_id is not None:
        query = query.filter(Appointment.doctor_id == doctor_id)
    if room_id is not None:
        query = query.filter(Appointment.room_id == room_id)
    if patient_id is not None:
        query = query.filter(Appointment.patient_id == patient_id)
    if status is not None:
        query = query.filter(Appointment.status == status)
    if on_date is not None:
        day_start = datetime.combine(on_date, time.min)
        day_end = day_start + timedelta(days=1)
        query = query.filter(
            Appointment.scheduled_start < day_end,
            Appointment.scheduled_end > day_start
        )
    return query.order_by(Appointment.scheduled_start, Appointment.id).all()


def check_booking(
    db: Session,
    doctor_id: int,
    start: datetime,
    end: datetime,
    room_id: Optional[int] = None,
    appointment_id: Optional[int] = None,
) -> BookingDecision:
    """Run the conflict validator against what is currently stored.

    Does not lock or write anything; ``book_appointment`` and
    ``reschedule_appointment`` call it again under the booking lock.
    """
    start, end = to_naive_utc(start), to_naive_utc(end)
    doctor = get_doctor_or_404(db, doctor_id)
    if room_id is not None:
        get_room_or_404(db, room_id)

    candidate = BookingCandidate(
        doctor_id=doctor_id,
        room_id=room_id,
        start=start,
        end=end,
        appointment_id=appointment_id,
    )
    if end <= start:
        return validate_booking(candidate, doctor_active=doctor.active)

    window_start, window_end = day_window(start, end)
    doctor_appointments = [
        ExistingAppointment.from_model(appt)
        for appt in active_appointments_for_doctor(db, doctor_id, window_start, window_end)
    ]
    room_appointments = []
    if room_id is not None:
        room_appointments = [
            ExistingAppointment.from_model(appt)
            for appt in active_appointments_for_room(db, room_id, window_start, window_end)
        ]
    return validate_booking(candidate, doctor.active, doctor_appointments, room_appointments)


def _load_services(db: Session, lines: Iterable[ServiceLine]) -> List[Tuple[Service, int]]:
    loaded = []
    seen = set()
    for service_id, qty in lines:
        if service_id in seen:
            raise ValidationException(
                f"Service {service_id} listed more than once",
                details={"service_id": service_id},
            )
        if qty < 1:
            raise ValidationException("Service quantity must be at least 1", details={"service_id": service_id})
        service = db.get(Service, service_id)
        if service is None:
            raise NotFoundException(f"Service {service_id} not found", details={"service_id": service_id})
        seen.add(service_id)
        loaded.append((service, qty))
    return loaded


def default_end(start: datetime, services: Sequence[Tuple[Service, int]]) -> datetime:
    """End time derived from the attached services, or the default slot length."""
    minutes = sum((service.duration_minutes or 0) * qty for service, qty in services)
    if minutes <= 0:
        minutes = settings.DEFAULT_APPOINTMENT_MINUTES
    return start + timedelta(minutes=minutes)


def _reject(decision: BookingDecision) -> BookingRejected:
    conflict_id = decision.conflict.id if decision.conflict else None
    logger.info("Booking rejected: %s (conflicting appointment %s)", decision.kind.value, conflict_id)
    return BookingRejected(decision)


def book_appointment(
    db: Session,
    *,
    patient_id: int,
    doctor_id: int,
    start: datetime,
    created_by: int,
    end: Optional[datetime] = None,
    room_id: Optional[int] = None,
    reason: Optional[str] = None,
    services: Iterable[ServiceLine] = (),
) -> Appointment:
    if db.get(Patient, patient_id) is None:
        raise NotFoundException(f"Patient {patient_id} not found", details={"patient_id": patient_id})
    service_lines = _load_services(db, services)

    start = to_naive_utc(start)
    end = to_naive_utc(end) if end is not None else default_end(start, service_lines)

    with booking_guard(db, doctor_id, room_id, start, end):
        decision = check_booking(db, doctor_id, start, end, room_id=room_id)
        if not decision.accepted:
            raise _reject(decision)

        appointment = Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            room_id=room_id,
            scheduled_start=start,
            scheduled_end=end,
            status=AppointmentStatus.SCHEDULED,
            reason=reason,
            created_by=created_by,
        )
        for service, qty in service_lines:
            appointment.services.append(AppointmentService(service=service, qty=qty))
        db.add(appointment)
        db.commit()
        db.refresh(appointment)

    logger.info(
        "Booked appointment %s: doctor %s, room %s, %s - %s",
        appointment.id, doctor_id, room_id, start, end,
    )
    return appointment


def reschedule_appointment(
    db: Session,
    appointment: Appointment,
    *,
    start: datetime,
    end: Optional[datetime] = None,
    doctor_id: Optional[int] = None,
    room_id: Optional[int] = None,
) -> Appointment:
    """Move an active appointment to a new slot, doctor or room.

    ``end`` defaults to keeping the current duration. ``doctor_id`` defaults to
    the current doctor; ``room_id`` is taken as given (None clears the room).
    """
    if not appointment.is_active:
        raise BusinessRuleException(
            f"Appointment {appointment.id} is {appointment.status.value} and cannot be rescheduled",
            details={"appointment_id": appointment.id, "status": appointment.status.value},
        )

    start = to_naive_utc(start)
    if end is None:
        end = start + (appointment.scheduled_end - appointment.scheduled_start)
    else:
        end = to_naive_utc(end)
    doctor_id = doctor_id if doctor_id is not None else appointment.doctor_id

    with booking_guard(db, doctor_id, room_id, start, end):
        decision = check_booking(
            db, doctor_id, start, end, room_id=room_id, appointment_id=appointment.id
        )
        if not decision.accepted:
            raise _reject(decision)

        appointment.doctor_id = doctor_id
        appointment.room_id = room_id
        appointment.scheduled_start = start
        appointment.scheduled_end = end
        db.commit()
        db.refresh(appointment)

    logger.info("Rescheduled appointment %s to %s - %s", appointment.id, start, end)
    return appointment


def update_status(db: Session, appointment: Appointment, target: AppointmentStatus) -> Appointment:
    current = appointment.status
    if ensure_transition(current, target):
        appointment.status = target
        db.commit()
        db.refresh(appointment)
        logger.info("Appointment %s: %s -> %s", appointment.id, current.value, target.value)
    return appointment


def check_in(db: Session, appointment: Appointment) -> Appointment:
    return update_status(db, appointment, AppointmentStatus.CHECKED_IN)


def delete_appointment(db: Session, appointment: Appointment) -> None:
    # service lines go with it through the relationship cascade
    appointment_id = appointment.id
    db.delete(appointment)
    db.commit()
    logger.info("Deleted appointment %s", appointment_id)


def mark_no_shows(db: Session, now: datetime, grace_minutes: int) -> int:
    """Move Scheduled appointments that ended more than ``grace_minutes`` ago to No-Show."""
    cutoff = now - timedelta(minutes=grace_minutes)
    overdue = db.query(Appointment).filter(
        Appointment.status == AppointmentStatus.SCHEDULED,
        Appointment.scheduled_end <= cutoff
    ).all()

    for appointment in overdue:
        appointment.status = AppointmentStatus.NO_SHOW
    db.commit()

    if overdue:
        logger.info("Marked %d appointments as No-Show", len(overdue))
    return len(overdue)
