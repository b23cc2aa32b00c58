"""
In-process booking locks.

The conflict check and the following insert must not interleave with another
booking for the same doctor or room on the same day. Locks are keyed by
("doctor", id, date) and ("room", id, date) and always taken in sorted order.
They only serialize callers inside one process. The booking workflow takes
them on SQLite, which has no row locks; other databases lock the doctor and
room rows instead.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

LockKey = Tuple[str, int, date]


def spanned_dates(start: datetime, end: datetime) -> List[date]:
    """Calendar dates touched by the half-open interval [start, end)."""
    first = start.date()
    if end <= start:
        return [first]
    last = (end - timedelta(microseconds=1)).date()
    return [first + timedelta(days=offset) for offset in range((last - first).days + 1)]


def booking_keys(doctor_id: int, room_id: Optional[int], start: datetime, end: datetime) -> List[LockKey]:
    keys = []
    for day in spanned_dates(start, end):
        keys.append(("doctor", doctor_id, day))
        if room_id is not None:
            keys.append(("room", room_id, day))
    return sorted(set(keys))


class BookingLockRegistry:
    """Per-key locks that are dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[LockKey, List] = {}

    def _checkout(self, key: LockKey) -> threading.Lock:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: LockKey) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, keys: Iterable[LockKey]) -> Iterator[List[LockKey]]:
        ordered = sorted(set(keys))
        acquired: List[Tuple[LockKey, threading.Lock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append((key, lock))
            logger.debug("Holding booking locks %s", ordered)
            yield ordered
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)


booking_locks = BookingLockRegistry()


@contextmanager
def booking_lock(
    doctor_id: int,
    room_id: Optional[int],
    start: datetime,
    end: datetime,
    registry: Optional[BookingLockRegistry] = None,
) -> Iterator[List[LockKey]]:
    if registry is None:
        registry = booking_locks
    with registry.hold(booking_keys(doctor_id, room_id, start, end)) as keys:
        yield keys
