from datetime import datetime

from clinic_booking.core import scheduler
from clinic_booking.crud import appointments as crud
from clinic_booking.models.appointment import AppointmentStatus


def test_sweep_marks_overdue_appointments(db, clinic, monkeypatch):
    appointment = crud.book_appointment(
        db,
        patient_id=clinic.patient.id,
        doctor_id=clinic.doctor.id,
        start=datetime(2026, 3, 2, 9),
        end=datetime(2026, 3, 2, 10),
        created_by=clinic.receptionist.id,
    )
    monkeypatch.setattr(scheduler, "utcnow", lambda: datetime(2026, 3, 2, 12))

    assert scheduler.sweep_no_shows() == 1

    db.refresh(appointment)
    assert appointment.status is AppointmentStatus.NO_SHOW


def test_sweep_with_nothing_to_do(monkeypatch):
    monkeypatch.setattr(scheduler, "utcnow", lambda: datetime(2026, 3, 2, 12))

    assert scheduler.sweep_no_shows() == 0


def test_start_and_stop_scheduler():
    scheduler.start_scheduler()
    try:
        assert scheduler.scheduler.running
        assert scheduler.scheduler.get_job("sweep_no_shows") is not None
    finally:
        scheduler.stop_scheduler()

    assert not scheduler.scheduler.running
