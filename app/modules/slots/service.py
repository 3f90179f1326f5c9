# app/modules/slots/service.py
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, List, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import (
    AccessDeniedError,
    NotFoundError,
    ScheduleValidationError,
    StateConflictError,
)
from app.core.security import Principal
from app.db.base import utcnow
from app.modules.availability import repository as availability_repo
from app.modules.providers import repository as providers_repo
from app.modules.slots import lifecycle
from app.modules.slots.lifecycle import SlotEvent
from app.modules.slots import repository as repo
from app.modules.slots.models import AvailabilitySlot, SlotStatus
from app.modules.slots.schemas import (
    BookSlotRequest,
    CompleteSlotRequest,
    SlotDetail,
    SlotPublic,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return utcnow()


def _to_detail(slot: AvailabilitySlot) -> SlotDetail:
    return SlotDetail.model_validate(slot)


def _to_public(slot: AvailabilitySlot) -> SlotPublic:
    return SlotPublic.model_validate(slot)


async def _lock_slot(session: AsyncSession, slot_id: UUID) -> AvailabilitySlot:
    slot = await repo.get_for_update(session, slot_id)
    if slot is None:
        raise NotFoundError("slot_not_found")
    return slot


def _require_owner(slot: AvailabilitySlot, principal: Principal) -> None:
    if principal.is_admin:
        return
    if not principal.is_provider or slot.provider_id != principal.id:
        raise AccessDeniedError("not_owner")


async def _flush(session: AsyncSession, slot: AvailabilitySlot) -> SlotDetail:
    try:
        await session.flush()
    except StaleDataError:
        raise StateConflictError("concurrent_modification", "slot was modified concurrently")
    return _to_detail(slot)


# BOOK
async def book_slot_svc(
    session: AsyncSession,
    slot_id: UUID,
    patient_id: UUID,
    payload: BookSlotRequest,
) -> SlotDetail:
    """
    Patient books a slot.

    The slot must be AVAILABLE (else StateConflictError); then the owning
    definition must be active and its booking policy (online booking,
    min/max advance) must accept the slot's start time.
    """
    slot = await _lock_slot(session, slot_id)
    lifecycle.next_status(slot.status_enum, SlotEvent.BOOK, slot.requires_confirmation)

    availability = await availability_repo.get_by_id(session, slot.availability_id)
    if availability is None or not availability.is_active:
        raise ScheduleValidationError("availability_inactive", "slot belongs to an inactive schedule")
    if not availability.is_booking_allowed(slot.slot_datetime, _now()):
        raise ScheduleValidationError(
            "booking_not_allowed", "slot is outside the bookable window for this schedule"
        )

    lifecycle.apply_book(
        slot,
        patient_id=patient_id,
        patient_name=payload.patient_name,
        patient_email=payload.patient_email,
        patient_phone=payload.patient_phone,
        reason_for_visit=payload.reason_for_visit,
        appointment_notes=payload.appointment_notes,
        now=_now(),
    )
    logger.info("Slot %s booked by patient %s (%s)", slot.id, patient_id, slot.status)
    return await _flush(session, slot)


# CANCEL
async def cancel_slot_svc(
    session: AsyncSession,
    slot_id: UUID,
    principal: Principal,
    reason: Optional[str] = None,
) -> SlotDetail:
    """
    - provider: only slots they own (cancelled_by_provider = True)
    - patient: only their own booking
    - admin: any slot, recorded as a provider-side cancellation
    """
    slot = await _lock_slot(session, slot_id)

    if principal.is_patient:
        if slot.patient_id != principal.id:
            raise AccessDeniedError("not_owner")
        by_provider = False
    else:
        _require_owner(slot, principal)
        by_provider = True

    lifecycle.apply_cancel(slot, reason=reason, by_provider=by_provider, now=_now())
    logger.info("Slot %s cancelled (by_provider=%s)", slot.id, by_provider)
    return await _flush(session, slot)


async def _provider_transition(
    session: AsyncSession,
    slot_id: UUID,
    principal: Principal,
    apply: Callable[[AvailabilitySlot], AvailabilitySlot],
) -> SlotDetail:
    slot = await _lock_slot(session, slot_id)
    _require_owner(slot, principal)
    apply(slot)
    return await _flush(session, slot)


async def confirm_slot_svc(session: AsyncSession, slot_id: UUID, principal: Principal) -> SlotDetail:
    return await _provider_transition(
        session, slot_id, principal, lambda s: lifecycle.apply_confirm(s, now=_now())
    )


async def check_in_svc(session: AsyncSession, slot_id: UUID, principal: Principal) -> SlotDetail:
    return await _provider_transition(
        session, slot_id, principal, lambda s: lifecycle.apply_check_in(s, now=_now())
    )


async def complete_slot_svc(
    session: AsyncSession,
    slot_id: UUID,
    principal: Principal,
    payload: CompleteSlotRequest,
) -> SlotDetail:
    return await _provider_transition(
        session,
        slot_id,
        principal,
        lambda s: lifecycle.apply_complete(
            s,
            provider_notes=payload.provider_notes,
            duration_minutes=payload.duration_minutes,
            now=_now(),
        ),
    )


async def mark_no_show_svc(session: AsyncSession, slot_id: UUID, principal: Principal) -> SlotDetail:
    return await _provider_transition(session, slot_id, principal, lifecycle.apply_no_show)


async def block_slot_svc(session: AsyncSession, slot_id: UUID, principal: Principal) -> SlotDetail:
    return await _provider_transition(session, slot_id, principal, lifecycle.apply_block)


async def unblock_slot_svc(session: AsyncSession, slot_id: UUID, principal: Principal) -> SlotDetail:
    return await _provider_transition(session, slot_id, principal, lifecycle.apply_unblock)


async def mark_reminder_sent_svc(
    session: AsyncSession, slot_id: UUID, principal: Principal
) -> SlotDetail:
    return await _provider_transition(
        session, slot_id, principal, lambda s: lifecycle.apply_reminder_sent(s, now=_now())
    )


# READ
async def get_slot_svc(
    session: AsyncSession,
    slot_id: UUID,
    principal: Principal,
) -> Union[SlotDetail, SlotPublic]:
    slot = await repo.get_by_id(session, slot_id)
    if slot is None:
        raise NotFoundError("slot_not_found")
    if (
        principal.is_admin
        or (principal.is_provider and slot.provider_id == principal.id)
        or (principal.is_patient and slot.patient_id == principal.id)
    ):
        return _to_detail(slot)
    return _to_public(slot)


async def list_availability_slots_svc(
    session: AsyncSession,
    provider_id: UUID,
    availability_id: UUID,
) -> List[SlotDetail]:
    availability = await availability_repo.get_by_id(session, availability_id)
    if availability is None:
        raise NotFoundError("availability_not_found")
    if availability.provider_id != provider_id:
        raise AccessDeniedError("not_owner")
    slots = await repo.list_by_availability(session, availability_id)
    return [_to_detail(s) for s in slots]


async def list_provider_slots_svc(
    session: AsyncSession,
    provider_id: UUID,
    start_date: date,
    end_date: date,
    statuses: Optional[Sequence[SlotStatus]] = None,
    only_bookable: bool = False,
) -> List[SlotPublic]:
    """
    A provider's calendar between two dates (inclusive).
    only_bookable keeps AVAILABLE slots of an active provider.
    """
    if end_date < start_date:
        raise ScheduleValidationError("invalid_date_range", "end_date must not be before start_date")

    provider = await providers_repo.get_by_id(session, provider_id)
    if provider is None:
        raise NotFoundError("provider_not_found")
    if only_bookable and not provider.is_active:
        return []

    slots = await repo.list_by_provider(
        session,
        provider_id,
        start_date,
        end_date,
        statuses=statuses,
        only_bookable=only_bookable,
    )
    return [_to_public(s) for s in slots]
