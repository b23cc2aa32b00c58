"""Tests for the booking workflow against a real (in-memory) database."""

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.dialects import postgresql

from clinic_booking.core.conflicts import DecisionKind
from clinic_booking.core.exceptions import (
    BookingRejected,
    BusinessRuleException,
    InvalidStatusTransition,
    NotFoundException,
    ValidationException,
)
from clinic_booking.crud import appointments as crud
from clinic_booking.models.appointment import Appointment, AppointmentStatus

DAY = datetime(2026, 3, 2)


def at(hour, minute=0):
    return DAY + timedelta(hours=hour, minutes=minute)


def book(db, clinic, start, end=None, doctor=None, room=None, patient=None, **kwargs):
    return crud.book_appointment(
        db,
        patient_id=(patient or clinic.patient).id,
        doctor_id=(doctor or clinic.doctor).id,
        room_id=room.id if room is not None else None,
        start=start,
        end=end,
        created_by=clinic.receptionist.id,
        **kwargs,
    )


class TestBookAppointment:
    def test_books_free_slot(self, db, clinic):
        appointment = book(db, clinic, at(9), at(9, 30), room=clinic.room, reason="Checkup")

        assert appointment.id is not None
        assert appointment.status is AppointmentStatus.SCHEDULED
        assert appointment.scheduled_start == at(9)
        assert appointment.scheduled_end == at(9, 30)
        assert appointment.room_id == clinic.room.id
        assert appointment.created_by == clinic.receptionist.id

    def test_end_defaults_to_service_duration(self, db, clinic):
        appointment = book(db, clinic, at(9), services=[(clinic.service.id, 2)])

        assert appointment.scheduled_end == at(9, 40)
        assert [(line.service_id, line.qty) for line in appointment.services] == [(clinic.service.id, 2)]

    def test_end_defaults_to_configured_slot_length(self, db, clinic):
        appointment = book(db, clinic, at(9))

        assert appointment.scheduled_end == at(9, 30)

    def test_doctor_double_booking_rejected(self, db, clinic):
        first = book(db, clinic, at(10), at(11))

        with pytest.raises(BookingRejected) as exc_info:
            book(db, clinic, at(10, 30), at(11, 30), patient=clinic.other_patient)

        decision = exc_info.value.decision
        assert decision.kind is DecisionKind.DOCTOR_DOUBLE_BOOKED
        assert decision.conflict.id == first.id
        assert exc_info.value.status_code == 409
        assert db.query(Appointment).count() == 1

    def test_back_to_back_bookings_accepted(self, db, clinic):
        book(db, clinic, at(10), at(10, 30), room=clinic.room)
        book(db, clinic, at(10, 30), at(11), room=clinic.room, patient=clinic.other_patient)

        assert db.query(Appointment).count() == 2

    def test_room_double_booking_rejected(self, db, clinic):
        first = book(db, clinic, at(10), at(11), room=clinic.room)

        with pytest.raises(BookingRejected) as exc_info:
            book(db, clinic, at(10), at(11), doctor=clinic.other_doctor, room=clinic.room)

        assert exc_info.value.decision.kind is DecisionKind.ROOM_DOUBLE_BOOKED
        assert exc_info.value.decision.conflict.id == first.id

    def test_other_room_same_time_accepted(self, db, clinic):
        book(db, clinic, at(10), at(11), room=clinic.room)
        appointment = book(db, clinic, at(10), at(11), doctor=clinic.other_doctor, room=clinic.exam_room)

        assert appointment.room_id == clinic.exam_room.id

    def test_cancelled_appointment_frees_slot(self, db, clinic):
        first = book(db, clinic, at(10), at(11), room=clinic.room)
        crud.update_status(db, first, AppointmentStatus.CANCELLED)

        second = book(db, clinic, at(10), at(11), room=clinic.room, patient=clinic.other_patient)

        assert second.id != first.id

    def test_inactive_doctor_rejected(self, db, clinic):
        with pytest.raises(BookingRejected) as exc_info:
            book(db, clinic, at(10), at(11), doctor=clinic.inactive_doctor)

        assert exc_info.value.decision.kind is DecisionKind.INACTIVE_DOCTOR
        assert exc_info.value.status_code == 422

    def test_inverted_interval_rejected(self, db, clinic):
        with pytest.raises(BookingRejected) as exc_info:
            book(db, clinic, at(11), at(10))

        assert exc_info.value.decision.kind is DecisionKind.INVALID_INTERVAL
        assert exc_info.value.status_code == 400
        assert db.query(Appointment).count() == 0

    def test_unknown_patient(self, db, clinic):
        with pytest.raises(NotFoundException):
            crud.book_appointment(
                db, patient_id=999, doctor_id=clinic.doctor.id, start=at(9),
                created_by=clinic.receptionist.id,
            )

    def test_unknown_room(self, db, clinic):
        with pytest.raises(NotFoundException):
            crud.book_appointment(
                db, patient_id=clinic.patient.id, doctor_id=clinic.doctor.id, room_id=999,
                start=at(9), created_by=clinic.receptionist.id,
            )

    def test_unknown_service(self, db, clinic):
        with pytest.raises(NotFoundException):
            book(db, clinic, at(9), services=[(999, 1)])

    def test_duplicate_service_line(self, db, clinic):
        with pytest.raises(ValidationException):
            book(db, clinic, at(9), services=[(clinic.service.id, 1), (clinic.service.id, 1)])

    def test_aware_times_stored_as_utc(self, db, clinic):
        plus_two = timezone(timedelta(hours=2))
        appointment = book(
            db, clinic,
            datetime(2026, 3, 2, 10, tzinfo=plus_two),
            datetime(2026, 3, 2, 11, tzinfo=plus_two),
        )

        assert appointment.scheduled_start == at(8)
        assert appointment.scheduled_end == at(9)

    def test_overnight_booking_conflicts_next_morning(self, db, clinic):
        book(db, clinic, at(23), at(25))

        with pytest.raises(BookingRejected):
            book(db, clinic, at(24, 30), at(25, 30), patient=clinic.other_patient)


class TestCheckBooking:
    def test_dry_run_does_not_write(self, db, clinic):
        decision = crud.check_booking(db, clinic.doctor.id, at(9), at(10), room_id=clinic.room.id)

        assert decision.accepted
        assert db.query(Appointment).count() == 0

    def test_reports_conflict(self, db, clinic):
        first = book(db, clinic, at(9), at(10))

        decision = crud.check_booking(db, clinic.doctor.id, at(9, 30), at(10, 30))

        assert decision.kind is DecisionKind.DOCTOR_DOUBLE_BOOKED
        assert decision.conflict.id == first.id

    def test_unknown_doctor(self, db, clinic):
        with pytest.raises(NotFoundException):
            crud.check_booking(db, 999, at(9), at(10))


class TestReschedule:
    def test_overlapping_its_own_slot_is_fine(self, db, clinic):
        appointment = book(db, clinic, at(10), at(11), room=clinic.room)

        moved = crud.reschedule_appointment(db, appointment, start=at(10, 30), room_id=clinic.room.id)

        assert moved.scheduled_start == at(10, 30)
        assert moved.scheduled_end == at(11, 30)

    def test_cannot_move_onto_another_booking(self, db, clinic):
        book(db, clinic, at(9), at(10))
        appointment = book(db, clinic, at(11), at(12), patient=clinic.other_patient)

        with pytest.raises(BookingRejected):
            crud.reschedule_appointment(db, appointment, start=at(9, 30), end=at(10, 30))

        db.refresh(appointment)
        assert appointment.scheduled_start == at(11)

    def test_move_to_other_doctor_and_clear_room(self, db, clinic):
        appointment = book(db, clinic, at(10), at(11), room=clinic.room)

        moved = crud.reschedule_appointment(
            db, appointment, start=at(14), doctor_id=clinic.other_doctor.id, room_id=None
        )

        assert moved.doctor_id == clinic.other_doctor.id
        assert moved.room_id is None

    def test_terminal_appointment_cannot_move(self, db, clinic):
        appointment = book(db, clinic, at(10), at(11))
        crud.update_status(db, appointment, AppointmentStatus.CANCELLED)

        with pytest.raises(BusinessRuleException):
            crud.reschedule_appointment(db, appointment, start=at(12))


class TestStatus:
    def test_check_in_then_complete(self, db, clinic):
        appointment = book(db, clinic, at(10), at(11))

        crud.check_in(db, appointment)
        assert appointment.status is AppointmentStatus.CHECKED_IN

        crud.update_status(db, appointment, AppointmentStatus.COMPLETED)
        assert appointment.status is AppointmentStatus.COMPLETED

    def test_completed_is_final(self, db, clinic):
        appointment = book(db, clinic, at(10), at(11))
        crud.check_in(db, appointment)
        crud.update_status(db, appointment, AppointmentStatus.COMPLETED)

        with pytest.raises(InvalidStatusTransition):
            crud.update_status(db, appointment, AppointmentStatus.CANCELLED)


class TestBookingGuard:
    def test_sqlite_takes_process_lock(self, db, clinic, monkeypatch):
        taken = []

        @contextmanager
        def recording_lock(doctor_id, room_id, start, end):
            taken.append((doctor_id, room_id, start, end))
            yield

        monkeypatch.setattr(crud, "booking_lock", recording_lock)

        book(db, clinic, at(9), at(10), room=clinic.room)

        assert taken == [(clinic.doctor.id, clinic.room.id, at(9), at(10))]

    def test_other_databases_lock_doctor_and_room_rows(self, db, clinic, monkeypatch):
        locked = []
        lock_rows = crud.lock_booking_rows

        def recording_rows(session, doctor_id, room_id=None):
            locked.append((doctor_id, room_id))
            lock_rows(session, doctor_id, room_id)

        monkeypatch.setattr(crud, "uses_process_lock", lambda session: False)
        monkeypatch.setattr(crud, "lock_booking_rows", recording_rows)

        appointment = book(db, clinic, at(9), at(10), room=clinic.room)
        crud.reschedule_appointment(db, appointment, start=at(11), room_id=None)

        assert locked == [(clinic.doctor.id, clinic.room.id), (clinic.doctor.id, None)]

    def test_row_lock_queries_select_for_update(self, db):
        doctor_sql = str(crud.doctor_row_for_update(db, 1).statement.compile(dialect=postgresql.dialect()))
        room_sql = str(crud.room_row_for_update(db, 1).statement.compile(dialect=postgresql.dialect()))

        assert doctor_sql.endswith("FOR UPDATE")
        assert room_sql.endswith("FOR UPDATE")

    def test_missing_room_fails_row_lock(self, db, clinic):
        with pytest.raises(NotFoundException):
            crud.lock_booking_rows(db, clinic.doctor.id, 999)

    def test_rejection_leaves_session_usable(self, db, clinic, monkeypatch):
        monkeypatch.setattr(crud, "uses_process_lock", lambda session: False)
        book(db, clinic, at(9), at(10))

        with pytest.raises(BookingRejected):
            book(db, clinic, at(9, 30), at(10, 30), patient=clinic.other_patient)

        assert db.query(Appointment).count() == 1


def test_mark_no_shows(db, clinic):
    overdue = book(db, clinic, at(10), at(11))
    within_grace = book(db, clinic, at(11), at(11, 45))
    checked_in = book(db, clinic, at(9), at(10), doctor=clinic.other_doctor)
    crud.check_in(db, checked_in)

    marked = crud.mark_no_shows(db, now=at(12), grace_minutes=30)

    assert marked == 1
    db.refresh(overdue)
    db.refresh(within_grace)
    db.refresh(checked_in)
    assert overdue.status is AppointmentStatus.NO_SHOW
    assert within_grace.status is AppointmentStatus.SCHEDULED
    assert checked_in.status is AppointmentStatus.CHECKED_IN


def test_query_appointments_by_day(db, clinic):
    book(db, clinic, at(10), at(11))
    book(db, clinic, at(34), at(35))

    assert len(crud.query_appointments(db, doctor_id=clinic.doctor.id, on_date=DAY.date())) == 1
    assert len(crud.query_appointments(db, patient_id=clinic.patient.id)) == 2
