# app/modules/availability/conflicts.py
from __future__ import annotations

from datetime import date
from typing import Iterable, List, Tuple

from app.modules.availability.models import RecurrenceType

# Stand-in for an open-ended definition's end date
OPEN_END = date(2099, 12, 31)


def effective_date_range(definition) -> Tuple[date, date]:
    if RecurrenceType(definition.recurrence_type) is RecurrenceType.ONE_TIME:
        return definition.start_date, definition.start_date
    return definition.start_date, definition.end_date or OPEN_END


def _dates_overlap(a, b) -> bool:
    a_start, a_end = effective_date_range(a)
    b_start, b_end = effective_date_range(b)
    return a_start <= b_end and b_start <= a_end


def _times_overlap(a, b) -> bool:
    # half-open: 09:00-12:00 and 12:00-15:00 do not overlap
    return a.start_time < b.end_time and b.start_time < a.end_time


def conflicts(a, b) -> bool:
    """
    Whether two schedule definitions could produce overlapping slots.

    WEEKLY vs WEEKLY compares the weekday; any other pairing of recurrence
    types is treated as conflicting once dates and times overlap.

    Times compare as half-open ranges, so back-to-back definitions are
    accepted. A ONE_TIME definition occupies only its start_date whatever
    its end_date says. Both rules are intentional and narrower than a
    closed-range comparison of the stored columns.
    """
    if a.provider_id != b.provider_id:
        return False
    if not _dates_overlap(a, b):
        return False
    if not _times_overlap(a, b):
        return False

    weekly = RecurrenceType.WEEKLY
    if RecurrenceType(a.recurrence_type) is weekly and RecurrenceType(b.recurrence_type) is weekly:
        return a.day_of_week == b.day_of_week
    return True


def find_conflicts(candidate, existing: Iterable) -> List:
    """
    Every active definition in `existing` that conflicts with `candidate`
    (the candidate itself is skipped when it is in the list).
    """
    found = []
    candidate_id = getattr(candidate, "id", None)
    for other in existing:
        if candidate_id is not None and other.id == candidate_id:
            continue
        if not other.is_active:
            continue
        if conflicts(candidate, other):
            found.append(other)
    return found


def describe(definition) -> dict:
    return {
        "id": str(definition.id),
        "title": definition.title,
        "time_range": "%s - %s"
        % (definition.start_time.strftime("%H:%M"), definition.end_time.strftime("%H:%M")),
    }
