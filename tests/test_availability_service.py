"""Service tests for schedule definitions, run against in-memory SQLite."""

import uuid
from datetime import date, time

import pytest
from sqlalchemy import func, select

from app.core.config import settings
from app.core.errors import (
    AccessDeniedError,
    ConflictError,
    HasActiveBookingsError,
    NotFoundError,
    ScheduleValidationError,
)
from app.modules.availability.models import ProviderAvailability
from app.modules.availability.schemas import AvailabilityRequest
from app.modules.availability.service import (
    create_availability_svc,
    delete_availability_svc,
    get_availability_svc,
    get_statistics_svc,
    list_availabilities_svc,
    search_availabilities_svc,
    update_availability_svc,
)
from app.modules.slots import repository as slots_repo
from app.modules.slots.models import AvailabilitySlot, SlotStatus
from app.modules.slots.schemas import BookSlotRequest, CompleteSlotRequest
from app.modules.slots.service import book_slot_svc, cancel_slot_svc, complete_slot_svc


async def _slots(session, availability_id):
    return await slots_repo.list_by_availability(session, availability_id)


async def _count_definitions(session) -> int:
    return (await session.execute(select(func.count()).select_from(ProviderAvailability))).scalar_one()


@pytest.mark.asyncio
async def test_create_generates_slots(session, provider, frozen_clock, availability_payload):
    detail = await create_availability_svc(
        session, provider.id, AvailabilityRequest(**availability_payload())
    )

    assert detail.provider_name == "Gregory House"
    assert detail.conflicts == []
    assert detail.availability.version == 1
    assert detail.statistics.total_slots == 8
    assert detail.statistics.available_slots == 8
    assert detail.statistics.utilization_rate == 0.0

    slots = await _slots(session, detail.availability.id)
    assert len(slots) == 8
    assert {s.slot_date for s in slots} == {date(2030, 1, 9), date(2030, 1, 16)}
    assert all(s.provider_id == provider.id for s in slots)


@pytest.mark.asyncio
async def test_create_uses_default_time_zone(session, provider, frozen_clock, availability_payload):
    body = availability_payload()
    body.pop("time_zone")
    detail = await create_availability_svc(session, provider.id, AvailabilityRequest(**body))
    assert detail.availability.time_zone == settings.AVAILABILITY_DEFAULT_TIMEZONE


@pytest.mark.asyncio
async def test_create_without_auto_generation(
    session, provider, frozen_clock, availability_payload, monkeypatch
):
    monkeypatch.setattr(settings, "AVAILABILITY_AUTO_GENERATE_SLOTS", False)
    detail = await create_availability_svc(
        session, provider.id, AvailabilityRequest(**availability_payload())
    )
    assert await _slots(session, detail.availability.id) == []


@pytest.mark.asyncio
async def test_create_unknown_provider(session, frozen_clock, availability_payload):
    with pytest.raises(NotFoundError):
        await create_availability_svc(
            session, uuid.uuid4(), AvailabilityRequest(**availability_payload())
        )


@pytest.mark.asyncio
async def test_create_inactive_provider(session, provider, frozen_clock, availability_payload):
    provider.is_active = False
    await session.flush()
    with pytest.raises(AccessDeniedError):
        await create_availability_svc(
            session, provider.id, AvailabilityRequest(**availability_payload())
        )


@pytest.mark.asyncio
async def test_create_rejects_past_start(session, provider, frozen_clock, availability_payload):
    with pytest.raises(ScheduleValidationError):
        await create_availability_svc(
            session, provider.id, AvailabilityRequest(**availability_payload(start_date="2030-01-06"))
        )


@pytest.mark.asyncio
async def test_create_conflict_reports_all_and_writes_nothing(
    session, provider, frozen_clock, availability_payload
):
    await create_availability_svc(
        session, provider.id, AvailabilityRequest(**availability_payload(title="Wednesday clinic"))
    )
    await create_availability_svc(
        session,
        provider.id,
        AvailabilityRequest(**availability_payload(title="Friday clinic", day_of_week=5)),
    )
    before_defs = await _count_definitions(session)
    before_slots = (await session.execute(select(func.count()).select_from(AvailabilitySlot))).scalar_one()

    with pytest.raises(ConflictError) as exc_info:
        await create_availability_svc(
            session,
            provider.id,
            AvailabilityRequest(
                **availability_payload(
                    title="Daily cover", recurrence_type="DAILY", day_of_week=None,
                    start_time="10:00", end_time="12:00",
                )
            ),
        )

    titles = {c["title"] for c in exc_info.value.conflicts}
    assert titles == {"Wednesday clinic", "Friday clinic"}
    assert await _count_definitions(session) == before_defs
    after_slots = (await session.execute(select(func.count()).select_from(AvailabilitySlot))).scalar_one()
    assert after_slots == before_slots


@pytest.mark.asyncio
async def test_adjacent_definitions_are_accepted(session, provider, frozen_clock, availability_payload):
    await create_availability_svc(session, provider.id, AvailabilityRequest(**availability_payload()))
    detail = await create_availability_svc(
        session,
        provider.id,
        AvailabilityRequest(**availability_payload(title="Late morning", start_time="11:00", end_time="12:00")),
    )
    assert len(await _slots(session, detail.availability.id)) == 4


@pytest.mark.asyncio
async def test_update_regenerates_open_slots_and_keeps_bookings(
    session, provider, frozen_clock, availability_payload
):
    detail = await create_availability_svc(
        session, provider.id, AvailabilityRequest(**availability_payload())
    )
    availability_id = detail.availability.id
    first = (await _slots(session, availability_id))[0]
    patient_id = uuid.uuid4()
    await book_slot_svc(session, first.id, patient_id, BookSlotRequest(patient_name="Jane Doe"))

    updated = await update_availability_svc(
        session, provider.id, availability_id, AvailabilityRequest(**availability_payload(end_time="12:00"))
    )

    assert updated.availability.version == 2
    slots = await _slots(session, availability_id)
    assert len(slots) == 12
    booked = [s for s in slots if s.status == SlotStatus.BOOKED.value]
    assert len(booked) == 1
    assert booked[0].id == first.id
    assert booked[0].patient_id == patient_id
    keys = [(s.slot_date, s.start_time) for s in slots]
    assert len(keys) == len(set(keys))
    assert (date(2030, 1, 9), time(11, 30)) in keys


@pytest.mark.asyncio
async def test_update_without_timing_change_keeps_slots(
    session, provider, frozen_clock, availability_payload
):
    detail = await create_availability_svc(
        session, provider.id, AvailabilityRequest(**availability_payload())
    )
    before = {s.id for s in await _slots(session, detail.availability.id)}

    updated = await update_availability_svc(
        session,
        provider.id,
        detail.availability.id,
        AvailabilityRequest(**availability_payload(title="Renamed clinic")),
    )

    assert updated.availability.title == "Renamed clinic"
    assert {s.id for s in await _slots(session, detail.availability.id)} == before


@pytest.mark.asyncio
async def test_update_keeps_stored_policy_fields_when_omitted(
    session, provider, frozen_clock, availability_payload
):
    detail = await create_availability_svc(
        session,
        provider.id,
        AvailabilityRequest(
            **availability_payload(
                time_zone="America/Chicago", max_advance_booking_days=30, min_advance_booking_hours=12
            )
        ),
    )
    body = availability_payload(title="Renamed clinic")
    body.pop("time_zone")

    updated = await update_availability_svc(
        session, provider.id, detail.availability.id, AvailabilityRequest(**body)
    )

    assert updated.availability.title == "Renamed clinic"
    assert updated.availability.time_zone == "America/Chicago"
    assert updated.availability.max_advance_booking_days == 30
    assert updated.availability.min_advance_booking_hours == 12

    changed = await update_availability_svc(
        session,
        provider.id,
        detail.availability.id,
        AvailabilityRequest(**availability_payload(time_zone="Europe/London", min_advance_booking_hours=4)),
    )
    assert changed.availability.time_zone == "Europe/London"
    assert changed.availability.min_advance_booking_hours == 4
    assert changed.availability.max_advance_booking_days == 30


@pytest.mark.asyncio
async def test_update_rejects_kept_notice_too_long_for_new_type(
    session, provider, frozen_clock, availability_payload
):
    detail = await create_availability_svc(
        session,
        provider.id,
        AvailabilityRequest(**availability_payload(min_advance_booking_hours=24)),
    )
    with pytest.raises(ScheduleValidationError):
        await update_availability_svc(
            session,
            provider.id,
            detail.availability.id,
            AvailabilityRequest(**availability_payload(appointment_type="EMERGENCY")),
        )
    availability = await session.get(ProviderAvailability, detail.availability.id)
    assert availability.appointment_type == "CONSULTATION"


@pytest.mark.asyncio
async def test_update_conflict_with_other_definition(
    session, provider, frozen_clock, availability_payload
):
    await create_availability_svc(session, provider.id, AvailabilityRequest(**availability_payload()))
    friday = await create_availability_svc(
        session, provider.id, AvailabilityRequest(**availability_payload(title="Friday", day_of_week=5))
    )
    with pytest.raises(ConflictError):
        await update_availability_svc(
            session,
            provider.id,
            friday.availability.id,
            AvailabilityRequest(**availability_payload(title="Friday", day_of_week=3)),
        )


@pytest.mark.asyncio
async def test_update_other_providers_definition(
    session, provider, other_provider, frozen_clock, availability_payload
):
    detail = await create_availability_svc(
        session, provider.id, AvailabilityRequest(**availability_payload())
    )
    with pytest.raises(AccessDeniedError):
        await update_availability_svc(
            session, other_provider.id, detail.availability.id, AvailabilityRequest(**availability_payload())
        )


@pytest.mark.asyncio
async def test_delete_blocked_by_booking_then_allowed_after_cancel(
    session, provider, provider_principal, frozen_clock, availability_payload
):
    detail = await create_availability_svc(
        session, provider.id, AvailabilityRequest(**availability_payload())
    )
    availability_id = detail.availability.id
    slot = (await _slots(session, availability_id))[0]
    await book_slot_svc(session, slot.id, uuid.uuid4(), BookSlotRequest())

    with pytest.raises(HasActiveBookingsError):
        await delete_availability_svc(session, provider.id, availability_id)
    assert (await session.get(ProviderAvailability, availability_id)).is_active is True

    await cancel_slot_svc(session, slot.id, provider_principal, "Provider unavailable")
    await delete_availability_svc(session, provider.id, availability_id)

    availability = await session.get(ProviderAvailability, availability_id)
    assert availability.is_active is False
    remaining = await _slots(session, availability_id)
    assert [s.status for s in remaining] == [SlotStatus.CANCELLED.value]


@pytest.mark.asyncio
async def test_completed_slot_key_is_skipped_by_later_definition(
    session, provider, provider_principal, frozen_clock, availability_payload
):
    first = await create_availability_svc(
        session, provider.id, AvailabilityRequest(**availability_payload())
    )
    slot = (await _slots(session, first.availability.id))[0]
    await book_slot_svc(session, slot.id, uuid.uuid4(), BookSlotRequest())
    await complete_slot_svc(session, slot.id, provider_principal, CompleteSlotRequest())
    await delete_availability_svc(session, provider.id, first.availability.id)

    second = await create_availability_svc(
        session, provider.id, AvailabilityRequest(**availability_payload(title="Replacement clinic"))
    )

    new_slots = await _slots(session, second.availability.id)
    assert len(new_slots) == 7
    assert (slot.slot_date, slot.start_time) not in {(s.slot_date, s.start_time) for s in new_slots}


@pytest.mark.asyncio
async def test_get_and_statistics(session, provider, frozen_clock, availability_payload):
    detail = await create_availability_svc(
        session, provider.id, AvailabilityRequest(**availability_payload())
    )
    slot = (await _slots(session, detail.availability.id))[0]
    await book_slot_svc(session, slot.id, uuid.uuid4(), BookSlotRequest())

    fetched = await get_availability_svc(session, provider.id, detail.availability.id)
    assert fetched.statistics.total_slots == 8
    assert fetched.statistics.booked_slots == 1
    assert fetched.statistics.utilization_rate == 0.125

    stats = await get_statistics_svc(session, provider.id)
    assert stats.total_availabilities == 1
    assert stats.active_availabilities == 1
    assert stats.bookable_availabilities == 1
    assert stats.average_slot_duration == 30.0
    assert stats.utilization_rate == 0.125


@pytest.mark.asyncio
async def test_get_unknown_definition(session, provider, frozen_clock):
    with pytest.raises(NotFoundError):
        await get_availability_svc(session, provider.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_list_and_search(session, provider, frozen_clock, availability_payload):
    created = []
    for title, day in (("Monday clinic", 1), ("Tuesday telehealth", 2), ("Wednesday clinic", 3)):
        created.append(
            await create_availability_svc(
                session, provider.id, AvailabilityRequest(**availability_payload(title=title, day_of_week=day))
            )
        )
    await delete_availability_svc(session, provider.id, created[0].availability.id)

    page = await list_availabilities_svc(session, provider.id, limit=1, offset=0)
    assert page.total == 2
    assert page.has_next is True
    assert len(page.items) == 1

    everything = await list_availabilities_svc(session, provider.id, limit=10, offset=0, include_inactive=True)
    assert everything.total == 3

    found = await search_availabilities_svc(session, provider.id, "CLINIC")
    assert [a.title for a in found] == ["Wednesday clinic"]
    assert await search_availabilities_svc(session, provider.id, "   ") == []


@pytest.mark.asyncio
async def test_search_treats_like_wildcards_literally(session, provider, frozen_clock, availability_payload):
    await create_availability_svc(
        session, provider.id, AvailabilityRequest(**availability_payload(title="Room_4 clinic", day_of_week=4))
    )
    await create_availability_svc(
        session,
        provider.id,
        AvailabilityRequest(
            **availability_payload(title="Evening clinic", description="Walk-ins", day_of_week=5)
        ),
    )

    assert [a.title for a in await search_availabilities_svc(session, provider.id, "_")] == ["Room_4 clinic"]
    assert await search_availabilities_svc(session, provider.id, "%") == []
    assert [a.title for a in await search_availabilities_svc(session, provider.id, "m_4")] == ["Room_4 clinic"]
