"""Appointment status transitions."""

from typing import Dict, FrozenSet

from clinic_booking.core.exceptions import InvalidStatusTransition
from clinic_booking.models.appointment import ACTIVE_STATUSES, AppointmentStatus

TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CHECKED_IN,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CHECKED_IN: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


def is_active(status: AppointmentStatus) -> bool:
    return status in ACTIVE_STATUSES


def is_terminal(status: AppointmentStatus) -> bool:
    return not TRANSITIONS[status]


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in TRANSITIONS[current]


def ensure_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """Check a status change.

    Returns False when ``target`` equals ``current`` (nothing to do), True when
    the change is allowed, and raises ``InvalidStatusTransition`` otherwise.
    """
    if current == target:
        return False
    if not can_transition(current, target):
        raise InvalidStatusTransition(
            f"Cannot change appointment status from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )
    return True
