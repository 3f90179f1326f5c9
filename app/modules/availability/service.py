# app/modules/availability/service.py
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import List
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.errors import (
    AccessDeniedError,
    ConflictError,
    HasActiveBookingsError,
    NotFoundError,
    ScheduleValidationError,
)
from app.modules.availability import repository as repo
from app.modules.availability.conflicts import describe, find_conflicts
from app.modules.availability.models import ProviderAvailability
from app.modules.availability.recurrence import generate_for_definition
from app.modules.availability.schemas import (
    MAX_MIN_ADVANCE_HOURS,
    AvailabilityDetail,
    AvailabilityPage,
    AvailabilityPublic,
    AvailabilityRequest,
    ProviderAvailabilityStats,
    SlotStatistics,
)
from app.modules.providers import repository as providers_repo
from app.modules.providers.models import Provider
from app.modules.slots import repository as slots_repo
from app.modules.slots.models import BOOKED_LIKE, REGENERABLE, AvailabilitySlot, SlotStatus

logger = logging.getLogger(__name__)

# Fields whose change invalidates already generated slots
_TIMING_FIELDS = (
    "start_time",
    "end_time",
    "slot_duration_minutes",
    "buffer_time_minutes",
    "start_date",
    "end_date",
)


def _today() -> date:
    return datetime.now(ZoneInfo(settings.AVAILABILITY_DEFAULT_TIMEZONE)).date()


def _to_public(availability: ProviderAvailability) -> AvailabilityPublic:
    return AvailabilityPublic.model_validate(availability)


def _apply_request(
    availability: ProviderAvailability,
    payload: AvailabilityRequest,
    *,
    keep_stored: bool = False,
) -> None:
    """
    Copy the request onto the definition. With keep_stored, policy fields the
    request leaves out (time zone, advance-booking limits) keep their stored values.
    """
    sent = payload.model_fields_set
    availability.title = payload.title
    availability.description = payload.description
    availability.recurrence_type = payload.recurrence_type.value
    availability.day_of_week = payload.day_of_week
    availability.start_date = payload.start_date
    availability.end_date = payload.end_date
    availability.start_time = payload.start_time
    availability.end_time = payload.end_time
    availability.slot_duration_minutes = payload.slot_duration_minutes
    availability.buffer_time_minutes = payload.buffer_time_minutes
    if payload.time_zone or not keep_stored:
        availability.time_zone = payload.time_zone or settings.AVAILABILITY_DEFAULT_TIMEZONE
    availability.location_type = payload.location_type.value
    availability.location_details = payload.location_details
    availability.appointment_type = payload.appointment_type.value
    if "max_advance_booking_days" in sent or not keep_stored:
        availability.max_advance_booking_days = payload.max_advance_booking_days
    if "min_advance_booking_hours" in sent or not keep_stored:
        availability.min_advance_booking_hours = payload.min_advance_booking_hours
    availability.allow_online_booking = payload.allow_online_booking
    availability.requires_approval = payload.requires_approval
    availability.set_excluded_dates(payload.excluded_dates)


def _is_significant_change(availability: ProviderAvailability, payload: AvailabilityRequest) -> bool:
    return any(getattr(availability, f) != getattr(payload, f) for f in _TIMING_FIELDS)


async def _lock_active_provider(session: AsyncSession, provider_id: UUID) -> Provider:
    provider = await providers_repo.get_for_update(session, provider_id)
    if provider is None:
        raise NotFoundError("provider_not_found")
    if not provider.is_active:
        raise AccessDeniedError("provider_inactive")
    return provider


async def _load_owned(
    session: AsyncSession,
    provider_id: UUID,
    availability_id: UUID,
    *,
    lock: bool = False,
) -> ProviderAvailability:
    if lock:
        availability = await repo.get_for_update(session, availability_id)
    else:
        availability = await repo.get_by_id(session, availability_id)
    if availability is None:
        raise NotFoundError("availability_not_found")
    if availability.provider_id != provider_id:
        raise AccessDeniedError("not_owner")
    return availability


def _raise_on_conflicts(candidate: ProviderAvailability, existing: List[ProviderAvailability]) -> None:
    found = find_conflicts(candidate, existing)
    if found:
        logger.info(
            "Availability for provider %s conflicts with %d definition(s)",
            candidate.provider_id,
            len(found),
        )
        raise ConflictError(
            "schedule_conflict",
            "Availability overlaps existing schedule: "
            + ", ".join(f"{d.title} ({describe(d)['time_range']})" for d in found),
            conflicts=[describe(d) for d in found],
        )


async def _flush(session: AsyncSession) -> None:
    try:
        await session.flush()
    except StaleDataError:
        raise ConflictError("concurrent_modification", "availability was modified concurrently")


async def _generate_slots(session: AsyncSession, availability: ProviderAvailability) -> int:
    """
    Materialize the definition's slots for its generation window, skipping
    (date, start_time) keys the provider already occupies.
    """
    windows = generate_for_definition(
        availability, _today(), settings.AVAILABILITY_MAX_ADVANCE_DAYS
    )
    if not windows:
        return 0

    taken = await slots_repo.occupied_keys(
        session, availability.provider_id, windows[0].slot_date, windows[-1].slot_date
    )
    slots = [
        AvailabilitySlot(
            availability_id=availability.id,
            provider_id=availability.provider_id,
            slot_date=w.slot_date,
            start_time=w.start_time,
            end_time=w.end_time,
            status=w.status,
            requires_confirmation=w.requires_confirmation,
            is_available=True,
        )
        for w in windows
        if w.key not in taken
    ]
    try:
        return await slots_repo.add_many(session, slots)
    except IntegrityError:
        raise ConflictError("slot_conflict", "a generated slot collides with an existing one")


async def _slot_statistics(session: AsyncSession, provider_id: UUID) -> SlotStatistics:
    today = _today()
    counts = await slots_repo.count_by_status(
        session, provider_id, today, today + timedelta(days=settings.AVAILABILITY_STATS_WINDOW_DAYS)
    )
    total = sum(counts.values())
    booked = counts[SlotStatus.BOOKED] + counts[SlotStatus.PENDING_CONFIRMATION]
    completed = counts[SlotStatus.COMPLETED]
    utilization = (booked + completed) / total if total else 0.0
    return SlotStatistics(
        total_slots=total,
        available_slots=counts[SlotStatus.AVAILABLE],
        booked_slots=booked,
        completed_slots=completed,
        cancelled_slots=counts[SlotStatus.CANCELLED],
        no_show_slots=counts[SlotStatus.NO_SHOW],
        utilization_rate=round(utilization, 4),
    )


async def _to_detail(
    session: AsyncSession, availability: ProviderAvailability, provider: Provider
) -> AvailabilityDetail:
    return AvailabilityDetail(
        availability=_to_public(availability),
        provider_name=provider.full_name,
        statistics=await _slot_statistics(session, availability.provider_id),
        conflicts=[],
    )


# CREATE
async def create_availability_svc(
    session: AsyncSession,
    provider_id: UUID,
    payload: AvailabilityRequest,
) -> AvailabilityDetail:
    """
    Create a schedule definition and (optionally) generate its slots.

    - The provider row is locked so concurrent creates for one provider are serialized.
    - Nothing is written when the definition conflicts with an active one.
    """
    provider = await _lock_active_provider(session, provider_id)

    if payload.start_date < _today():
        raise ScheduleValidationError("start_date_in_past", "start_date cannot be in the past")

    availability = ProviderAvailability(provider_id=provider_id, is_active=True)
    _apply_request(availability, payload)

    existing = await repo.list_active_for_provider(session, provider_id)
    _raise_on_conflicts(availability, existing)

    await repo.add(session, availability)

    generated = 0
    if settings.AVAILABILITY_AUTO_GENERATE_SLOTS:
        generated = await _generate_slots(session, availability)

    logger.info(
        "Created availability %s for provider %s (%d slots)",
        availability.id,
        provider_id,
        generated,
    )
    return await _to_detail(session, availability, provider)


# UPDATE
async def update_availability_svc(
    session: AsyncSession,
    provider_id: UUID,
    availability_id: UUID,
    payload: AvailabilityRequest,
) -> AvailabilityDetail:
    """
    Replace a definition. When timing changes, AVAILABLE and BLOCKED slots are
    regenerated; slots with any booking history are left alone.
    """
    provider = await _lock_active_provider(session, provider_id)
    availability = await _load_owned(session, provider_id, availability_id, lock=True)
    if not availability.is_active:
        raise NotFoundError("availability_not_found")

    candidate = ProviderAvailability(id=availability.id, provider_id=provider_id, is_active=True)
    _apply_request(candidate, payload)
    existing = await repo.list_active_for_provider(session, provider_id)
    _raise_on_conflicts(candidate, existing)

    if "min_advance_booking_hours" not in payload.model_fields_set:
        limit = MAX_MIN_ADVANCE_HOURS[payload.appointment_type]
        if availability.min_advance_booking_hours > limit:
            raise ScheduleValidationError(
                "min_advance_hours_too_long",
                f"stored min_advance_booking_hours exceeds {limit} for {payload.appointment_type.value}",
            )

    significant = _is_significant_change(availability, payload)
    _apply_request(availability, payload, keep_stored=True)
    await _flush(session)

    if significant:
        removed = await slots_repo.delete_by_availability(session, availability.id, REGENERABLE)
        generated = await _generate_slots(session, availability)
        logger.info(
            "Regenerated slots for availability %s: %d removed, %d created",
            availability.id,
            removed,
            generated,
        )

    return await _to_detail(session, availability, provider)


# DELETE (soft)
async def delete_availability_svc(
    session: AsyncSession,
    provider_id: UUID,
    availability_id: UUID,
) -> None:
    await _lock_active_provider(session, provider_id)
    availability = await _load_owned(session, provider_id, availability_id, lock=True)
    if not availability.is_active:
        raise NotFoundError("availability_not_found")

    today = _today()
    horizon = today + timedelta(days=settings.AVAILABILITY_MAX_ADVANCE_DAYS)
    active = await slots_repo.count_by_availability(
        session, availability.id, BOOKED_LIKE, today, horizon
    )
    if active:
        logger.warning(
            "Refused to delete availability %s: %d active booking(s)", availability.id, active
        )
        raise HasActiveBookingsError(
            "has_active_bookings",
            f"availability has {active} upcoming booking(s)",
        )

    availability.is_active = False
    await _flush(session)
    removed = await slots_repo.delete_by_availability(session, availability.id, REGENERABLE)
    logger.info("Deactivated availability %s (%d open slots removed)", availability.id, removed)


# READ
async def get_availability_svc(
    session: AsyncSession,
    provider_id: UUID,
    availability_id: UUID,
) -> AvailabilityDetail:
    availability = await _load_owned(session, provider_id, availability_id)
    provider = await providers_repo.get_by_id(session, provider_id)
    if provider is None:
        raise NotFoundError("provider_not_found")
    return await _to_detail(session, availability, provider)


async def list_availabilities_svc(
    session: AsyncSession,
    provider_id: UUID,
    limit: int,
    offset: int,
    include_inactive: bool = False,
) -> AvailabilityPage:
    rows, total = await repo.list_for_provider(
        session, provider_id, limit=limit, offset=offset, include_inactive=include_inactive
    )
    return AvailabilityPage(
        items=[_to_public(a) for a in rows],
        total=total,
        limit=limit,
        offset=offset,
        has_next=offset + limit < total,
    )


async def search_availabilities_svc(
    session: AsyncSession,
    provider_id: UUID,
    q: str,
) -> List[AvailabilityPublic]:
    if not q or not q.strip():
        return []
    rows = await repo.search(session, provider_id, q)
    return [_to_public(a) for a in rows]


async def get_statistics_svc(
    session: AsyncSession,
    provider_id: UUID,
) -> ProviderAvailabilityStats:
    definitions = await repo.list_all_for_provider(session, provider_id)
    active = [d for d in definitions if d.is_active]
    bookable = [d for d in active if d.allow_online_booking]
    average = (
        sum(d.slot_duration_minutes for d in active) / len(active) if active else 0.0
    )
    slot_stats = await _slot_statistics(session, provider_id)
    return ProviderAvailabilityStats(
        total_availabilities=len(definitions),
        active_availabilities=len(active),
        bookable_availabilities=len(bookable),
        average_slot_duration=round(average, 2),
        utilization_rate=slot_stats.utilization_rate,
    )
