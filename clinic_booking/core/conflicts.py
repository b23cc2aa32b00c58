"""
Scheduling conflict validation.

Decides whether a proposed appointment may be booked given the doctor's
state and the appointments that already hold the doctor's and room's time.
Everything here is a pure function of its arguments: callers load the
existing appointments (normally for the same day) and call
``validate_booking`` while holding the booking lock for the doctor and room.

Intervals are half-open, [start, end): an appointment ending at 10:30 and one
starting at 10:30 do not overlap.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from clinic_booking.models.appointment import ACTIVE_STATUSES, AppointmentStatus

ROOM_UNASSIGNED = "RoomUnassigned"


class DecisionKind(str, enum.Enum):
    ACCEPT = "Accept"
    INVALID_INTERVAL = "InvalidInterval"
    INACTIVE_DOCTOR = "InactiveDoctor"
    DOCTOR_DOUBLE_BOOKED = "DoctorDoubleBooked"
    ROOM_DOUBLE_BOOKED = "RoomDoubleBooked"


@dataclass(frozen=True)
class BookingCandidate:
    """A proposed booking.

    ``appointment_id`` is set when an existing appointment is being moved, so
    that it does not conflict with its own current slot.
    """

    doctor_id: int
    start: datetime
    end: datetime
    room_id: Optional[int] = None
    appointment_id: Optional[int] = None


@dataclass(frozen=True)
class ExistingAppointment:
    id: int
    doctor_id: int
    start: datetime
    end: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    room_id: Optional[int] = None

    @classmethod
    def from_model(cls, appointment) -> "ExistingAppointment":
        return cls(
            id=appointment.id,
            doctor_id=appointment.doctor_id,
            start=appointment.scheduled_start,
            end=appointment.scheduled_end,
            status=appointment.status,
            room_id=appointment.room_id,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "appointment_id": self.id,
            "doctor_id": self.doctor_id,
            "room_id": self.room_id,
            "scheduled_start": self.start.isoformat(),
            "scheduled_end": self.end.isoformat(),
        }


@dataclass(frozen=True)
class BookingDecision:
    kind: DecisionKind
    message: str = ""
    conflict: Optional[ExistingAppointment] = None
    warnings: Tuple[str, ...] = ()

    @property
    def accepted(self) -> bool:
        return self.kind is DecisionKind.ACCEPT

    def as_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "kind": self.kind.value,
            "message": self.message,
            "conflict": self.conflict.as_dict() if self.conflict else None,
            "warnings": list(self.warnings),
        }


def intervals_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return start < other_end and other_start < end


def find_conflict(
    start: datetime,
    end: datetime,
    existing: Iterable[ExistingAppointment],
    exclude_id: Optional[int] = None,
) -> Optional[ExistingAppointment]:
    """Return the earliest active appointment overlapping [start, end), if any.

    Appointments outside ``ACTIVE_STATUSES`` never conflict. Ties are broken
    by (start, id) so the answer does not depend on the input order.
    """
    conflicts = [
        appt
        for appt in existing
        if appt.status in ACTIVE_STATUSES
        and appt.id != exclude_id
        and intervals_overlap(start, end, appt.start, appt.end)
    ]
    if not conflicts:
        return None
    return min(conflicts, key=lambda appt: (appt.start, appt.id))


def validate_booking(
    candidate: BookingCandidate,
    doctor_active: bool,
    doctor_appointments: Iterable[ExistingAppointment] = (),
    room_appointments: Iterable[ExistingAppointment] = (),
) -> BookingDecision:
    """Accept or reject a candidate booking.

    Checks run in a fixed order: interval sanity, doctor active flag, doctor
    overlap, then room overlap. A doctor conflict is reported even when the
    room is also taken, since moving rooms cannot resolve it.
    """
    if candidate.end <= candidate.start:
        return BookingDecision(
            DecisionKind.INVALID_INTERVAL,
            message="Appointment must end after it starts",
        )

    if not doctor_active:
        return BookingDecision(
            DecisionKind.INACTIVE_DOCTOR,
            message=f"Doctor {candidate.doctor_id} is not accepting bookings",
        )

    same_doctor = (appt for appt in doctor_appointments if appt.doctor_id == candidate.doctor_id)
    conflict = find_conflict(candidate.start, candidate.end, same_doctor, candidate.appointment_id)
    if conflict is not None:
        return BookingDecision(
            DecisionKind.DOCTOR_DOUBLE_BOOKED,
            message=(
                f"Doctor {candidate.doctor_id} already has appointment {conflict.id} "
                f"from {conflict.start:%Y-%m-%d %H:%M} to {conflict.end:%Y-%m-%d %H:%M}"
            ),
            conflict=conflict,
        )

    if candidate.room_id is None:
        return BookingDecision(DecisionKind.ACCEPT, message="Booking accepted", warnings=(ROOM_UNASSIGNED,))

    same_room = (appt for appt in room_appointments if appt.room_id == candidate.room_id)
    conflict = find_conflict(candidate.start, candidate.end, same_room, candidate.appointment_id)
    if conflict is not None:
        return BookingDecision(
            DecisionKind.ROOM_DOUBLE_BOOKED,
            message=(
                f"Room {candidate.room_id} is taken by appointment {conflict.id} "
                f"from {conflict.start:%Y-%m-%d %H:%M} to {conflict.end:%Y-%m-%d %H:%M}"
            ),
            conflict=conflict,
        )

    return BookingDecision(DecisionKind.ACCEPT, message="Booking accepted")
