# app/modules/slots/repository.py
from __future__ import annotations

from datetime import date, time
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.slots.models import OCCUPYING, AvailabilitySlot, SlotStatus


def _values(statuses: Iterable[SlotStatus]) -> List[str]:
    return [s.value for s in statuses]


async def get_by_id(session: AsyncSession, slot_id: UUID) -> Optional[AvailabilitySlot]:
    return await session.get(AvailabilitySlot, slot_id)


async def get_for_update(session: AsyncSession, slot_id: UUID) -> Optional[AvailabilitySlot]:
    """
    Row-locked load used by every lifecycle transition.
    """
    stmt = select(AvailabilitySlot).where(AvailabilitySlot.id == slot_id).with_for_update()
    return (await session.execute(stmt)).scalar_one_or_none()


async def add_many(session: AsyncSession, slots: Sequence[AvailabilitySlot]) -> int:
    """
    Persist a generated batch in one flush.
    """
    if not slots:
        return 0
    session.add_all(slots)
    await session.flush()
    return len(slots)


async def occupied_keys(
    session: AsyncSession,
    provider_id: UUID,
    start: date,
    end: date,
) -> Set[Tuple[date, time]]:
    """
    (slot_date, start_time) pairs already held by an occupying slot of the provider.
    """
    stmt = select(AvailabilitySlot.slot_date, AvailabilitySlot.start_time).where(
        and_(
            AvailabilitySlot.provider_id == provider_id,
            AvailabilitySlot.slot_date >= start,
            AvailabilitySlot.slot_date <= end,
            AvailabilitySlot.status.in_(_values(OCCUPYING)),
        )
    )
    rows = (await session.execute(stmt)).all()
    return {(r[0], r[1]) for r in rows}


async def delete_by_availability(
    session: AsyncSession,
    availability_id: UUID,
    statuses: Iterable[SlotStatus],
) -> int:
    stmt = delete(AvailabilitySlot).where(
        and_(
            AvailabilitySlot.availability_id == availability_id,
            AvailabilitySlot.status.in_(_values(statuses)),
        )
    )
    res = await session.execute(stmt)
    return res.rowcount or 0  # type: ignore


async def count_by_availability(
    session: AsyncSession,
    availability_id: UUID,
    statuses: Iterable[SlotStatus],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> int:
    conds = [
        AvailabilitySlot.availability_id == availability_id,
        AvailabilitySlot.status.in_(_values(statuses)),
    ]
    if start is not None:
        conds.append(AvailabilitySlot.slot_date >= start)
    if end is not None:
        conds.append(AvailabilitySlot.slot_date <= end)
    stmt = select(func.count()).select_from(AvailabilitySlot).where(and_(*conds))
    return (await session.execute(stmt)).scalar_one()


async def list_by_availability(
    session: AsyncSession, availability_id: UUID
) -> List[AvailabilitySlot]:
    stmt = (
        select(AvailabilitySlot)
        .where(AvailabilitySlot.availability_id == availability_id)
        .order_by(AvailabilitySlot.slot_date, AvailabilitySlot.start_time)
    )
    return list((await session.execute(stmt)).scalars().all())


async def list_by_provider(
    session: AsyncSession,
    provider_id: UUID,
    start: date,
    end: date,
    statuses: Optional[Iterable[SlotStatus]] = None,
    only_bookable: bool = False,
) -> List[AvailabilitySlot]:
    conds = [
        AvailabilitySlot.provider_id == provider_id,
        AvailabilitySlot.slot_date >= start,
        AvailabilitySlot.slot_date <= end,
    ]
    if statuses:
        conds.append(AvailabilitySlot.status.in_(_values(statuses)))
    if only_bookable:
        conds.append(AvailabilitySlot.status == SlotStatus.AVAILABLE.value)
        conds.append(AvailabilitySlot.is_available.is_(True))
    stmt = (
        select(AvailabilitySlot)
        .where(and_(*conds))
        .order_by(AvailabilitySlot.slot_date, AvailabilitySlot.start_time)
    )
    return list((await session.execute(stmt)).scalars().all())


async def count_by_status(
    session: AsyncSession,
    provider_id: UUID,
    start: date,
    end: date,
) -> Dict[SlotStatus, int]:
    """
    Slot counts per status for the provider within [start, end].
    Statuses with no slots are reported as 0.
    """
    stmt = (
        select(AvailabilitySlot.status, func.count())
        .where(
            and_(
                AvailabilitySlot.provider_id == provider_id,
                AvailabilitySlot.slot_date >= start,
                AvailabilitySlot.slot_date <= end,
            )
        )
        .group_by(AvailabilitySlot.status)
    )
    counts = {s: 0 for s in SlotStatus}
    for status_value, n in (await session.execute(stmt)).all():
        counts[SlotStatus(status_value)] = n
    return counts
