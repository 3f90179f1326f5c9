# app/modules/availability/recurrence.py
"""
Recurrence expansion for schedule definitions.

Everything here is pure: functions take a definition (a ProviderAvailability or
anything exposing the same attributes) plus dates, and return plain values.
Persisting the generated windows is the service's job.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import List, Optional, Tuple

from app.modules.availability.models import RecurrenceType

AVAILABLE = "AVAILABLE"


@dataclass(frozen=True)
class SlotWindow:
    slot_date: date
    start_time: time
    end_time: time
    requires_confirmation: bool = False
    status: str = AVAILABLE

    @property
    def key(self) -> Tuple[date, time]:
        return (self.slot_date, self.start_time)


def _to_minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def _from_minutes(m: int) -> time:
    return time(hour=m // 60, minute=m % 60)


def is_date_active(definition, day: date) -> bool:
    """
    True when `definition` produces slots on `day`.
    """
    if not definition.is_active:
        return False
    if day < definition.start_date:
        return False
    if definition.end_date is not None and day > definition.end_date:
        return False
    if day.isoformat() in (definition.excluded_dates or []):
        return False

    kind = RecurrenceType(definition.recurrence_type)
    if kind is RecurrenceType.ONE_TIME:
        return day == definition.start_date
    if kind is RecurrenceType.WEEKLY:
        return day.isoweekday() == definition.day_of_week
    # DAILY, and CUSTOM until custom patterns exist
    return True


def generate_daily_slots(definition, day: date) -> List[SlotWindow]:
    """
    Back-to-back windows of `slot_duration_minutes`, separated by
    `buffer_time_minutes`, fitting entirely inside [start_time, end_time].
    """
    duration = definition.slot_duration_minutes
    step = duration + (definition.buffer_time_minutes or 0)
    if duration <= 0 or step <= 0:
        return []

    requires_confirmation = bool(definition.requires_approval)
    end = _to_minutes(definition.end_time)
    cursor = _to_minutes(definition.start_time)

    windows: List[SlotWindow] = []
    while cursor + duration <= end:
        windows.append(
            SlotWindow(
                slot_date=day,
                start_time=_from_minutes(cursor),
                end_time=_from_minutes(cursor + duration),
                requires_confirmation=requires_confirmation,
            )
        )
        cursor += step
    return windows


def generate_slots_for_range(definition, range_start: date, range_end: date) -> List[SlotWindow]:
    windows: List[SlotWindow] = []
    day = range_start
    while day <= range_end:
        if is_date_active(definition, day):
            windows.extend(generate_daily_slots(definition, day))
        day += timedelta(days=1)
    return windows


def generation_window(definition, today: date, advance_days: int) -> Optional[Tuple[date, date]]:
    """
    Date range slots are materialized for: from the definition's start date up
    to its end date, capped at `advance_days` after today. None when empty.
    """
    horizon = today + timedelta(days=advance_days)
    end = horizon if definition.end_date is None else min(definition.end_date, horizon)
    if end < definition.start_date:
        return None
    return definition.start_date, end


def generate_for_definition(definition, today: date, advance_days: int) -> List[SlotWindow]:
    window = generation_window(definition, today, advance_days)
    if window is None:
        return []
    return generate_slots_for_range(definition, *window)
