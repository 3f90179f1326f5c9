# app/modules/slots/lifecycle.py
"""
Slot state machine.

`_TRANSITIONS` maps each event to the statuses it may fire from. Every
`apply_*` helper checks the guard first and only then touches the slot, so a
rejected event leaves the slot exactly as it was.
"""
from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional
from uuid import UUID

from app.core.errors import StateConflictError
from app.db.base import utcnow
from app.modules.slots.models import AvailabilitySlot, SlotStatus

logger = logging.getLogger(__name__)


class SlotEvent(str, Enum):
    BOOK = "BOOK"
    CANCEL = "CANCEL"
    CONFIRM = "CONFIRM"
    CHECK_IN = "CHECK_IN"
    COMPLETE = "COMPLETE"
    MARK_NO_SHOW = "MARK_NO_SHOW"
    BLOCK = "BLOCK"
    UNBLOCK = "UNBLOCK"
    MARK_REMINDER_SENT = "MARK_REMINDER_SENT"


S = SlotStatus

_TRANSITIONS: Dict[SlotEvent, FrozenSet[SlotStatus]] = {
    SlotEvent.BOOK: frozenset({S.AVAILABLE}),
    SlotEvent.CANCEL: frozenset({S.BOOKED, S.PENDING_CONFIRMATION}),
    SlotEvent.CONFIRM: frozenset({S.PENDING_CONFIRMATION}),
    SlotEvent.CHECK_IN: frozenset({S.BOOKED}),
    SlotEvent.COMPLETE: frozenset({S.BOOKED}),
    SlotEvent.MARK_NO_SHOW: frozenset({S.BOOKED}),
    SlotEvent.BLOCK: frozenset({S.AVAILABLE}),
    SlotEvent.UNBLOCK: frozenset({S.BLOCKED}),
    SlotEvent.MARK_REMINDER_SENT: frozenset({S.BOOKED, S.PENDING_CONFIRMATION}),
}

# Fixed targets; BOOK depends on the slot and the status-preserving events
# (CHECK_IN, MARK_REMINDER_SENT) are absent.
_TARGETS: Dict[SlotEvent, SlotStatus] = {
    SlotEvent.CANCEL: S.CANCELLED,
    SlotEvent.CONFIRM: S.BOOKED,
    SlotEvent.COMPLETE: S.COMPLETED,
    SlotEvent.MARK_NO_SHOW: S.NO_SHOW,
    SlotEvent.BLOCK: S.BLOCKED,
    SlotEvent.UNBLOCK: S.AVAILABLE,
}


def allowed_from(event: SlotEvent) -> FrozenSet[SlotStatus]:
    return _TRANSITIONS[event]


def can_fire(current: SlotStatus, event: SlotEvent) -> bool:
    return current in _TRANSITIONS[event]


def next_status(
    current: SlotStatus,
    event: SlotEvent,
    requires_confirmation: bool = False,
) -> SlotStatus:
    """
    Status after `event` fires from `current`.
    Raises StateConflictError when the event is not allowed from `current`.
    """
    if not can_fire(current, event):
        raise StateConflictError(
            "invalid_slot_state",
            f"cannot {event.value} a slot in status {current.value}",
        )
    if event is SlotEvent.BOOK:
        return S.PENDING_CONFIRMATION if requires_confirmation else S.BOOKED
    return _TARGETS.get(event, current)


def _fire(slot: AvailabilitySlot, event: SlotEvent) -> SlotStatus:
    target = next_status(slot.status_enum, event, slot.requires_confirmation)
    logger.info(
        "Slot %s: %s %s -> %s", slot.id, event.value, slot.status, target.value
    )
    return target


def apply_book(
    slot: AvailabilitySlot,
    *,
    patient_id: UUID,
    patient_name: Optional[str] = None,
    patient_email: Optional[str] = None,
    patient_phone: Optional[str] = None,
    reason_for_visit: Optional[str] = None,
    appointment_notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AvailabilitySlot:
    target = _fire(slot, SlotEvent.BOOK)
    slot.status = target.value
    slot.patient_id = patient_id
    slot.patient_name = patient_name
    slot.patient_email = patient_email
    slot.patient_phone = patient_phone
    slot.reason_for_visit = reason_for_visit
    slot.appointment_notes = appointment_notes
    slot.booking_timestamp = now or utcnow()
    slot.is_available = False
    return slot


def apply_cancel(
    slot: AvailabilitySlot,
    *,
    reason: Optional[str] = None,
    by_provider: bool = False,
    now: Optional[datetime] = None,
) -> AvailabilitySlot:
    target = _fire(slot, SlotEvent.CANCEL)
    slot.status = target.value
    slot.cancellation_reason = reason
    slot.cancelled_by_provider = by_provider
    slot.cancellation_timestamp = now or utcnow()
    slot.patient_id = None
    slot.patient_name = None
    slot.patient_email = None
    slot.patient_phone = None
    slot.reason_for_visit = None
    slot.appointment_notes = None
    slot.is_available = True
    return slot


def apply_confirm(slot: AvailabilitySlot, *, now: Optional[datetime] = None) -> AvailabilitySlot:
    target = _fire(slot, SlotEvent.CONFIRM)
    slot.status = target.value
    slot.confirmation_timestamp = now or utcnow()
    return slot


def apply_check_in(slot: AvailabilitySlot, *, now: Optional[datetime] = None) -> AvailabilitySlot:
    _fire(slot, SlotEvent.CHECK_IN)
    slot.checked_in = True
    slot.check_in_timestamp = now or utcnow()
    return slot


def apply_complete(
    slot: AvailabilitySlot,
    *,
    provider_notes: Optional[str] = None,
    duration_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> AvailabilitySlot:
    target = _fire(slot, SlotEvent.COMPLETE)
    slot.status = target.value
    slot.completed = True
    slot.completion_timestamp = now or utcnow()
    slot.provider_notes = provider_notes
    slot.duration_minutes = duration_minutes
    return slot


def apply_no_show(slot: AvailabilitySlot) -> AvailabilitySlot:
    target = _fire(slot, SlotEvent.MARK_NO_SHOW)
    slot.status = target.value
    slot.no_show = True
    slot.is_available = True
    return slot


def apply_block(slot: AvailabilitySlot) -> AvailabilitySlot:
    target = _fire(slot, SlotEvent.BLOCK)
    slot.status = target.value
    slot.is_available = False
    return slot


def apply_unblock(slot: AvailabilitySlot) -> AvailabilitySlot:
    target = _fire(slot, SlotEvent.UNBLOCK)
    slot.status = target.value
    slot.is_available = True
    return slot


def apply_reminder_sent(slot: AvailabilitySlot, *, now: Optional[datetime] = None) -> AvailabilitySlot:
    _fire(slot, SlotEvent.MARK_REMINDER_SENT)
    slot.reminder_sent = True
    slot.reminder_sent_timestamp = now or utcnow()
    return slot
