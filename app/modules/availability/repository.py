# app/modules/availability/repository.py
from __future__ import annotations

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.availability.models import ProviderAvailability


async def get_by_id(session: AsyncSession, availability_id: UUID) -> Optional[ProviderAvailability]:
    return await session.get(ProviderAvailability, availability_id)


async def get_for_update(
    session: AsyncSession, availability_id: UUID
) -> Optional[ProviderAvailability]:
    stmt = (
        select(ProviderAvailability)
        .where(ProviderAvailability.id == availability_id)
        .with_for_update()
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def add(session: AsyncSession, availability: ProviderAvailability) -> ProviderAvailability:
    session.add(availability)
    await session.flush()
    return availability


async def list_active_for_provider(
    session: AsyncSession, provider_id: UUID
) -> List[ProviderAvailability]:
    """
    Every active definition of the provider (input to conflict detection).
    """
    stmt = select(ProviderAvailability).where(
        and_(
            ProviderAvailability.provider_id == provider_id,
            ProviderAvailability.is_active.is_(True),
        )
    )
    return list((await session.execute(stmt)).scalars().all())


async def list_for_provider(
    session: AsyncSession,
    provider_id: UUID,
    *,
    limit: int,
    offset: int,
    include_inactive: bool = False,
) -> Tuple[List[ProviderAvailability], int]:
    cond = ProviderAvailability.provider_id == provider_id
    if not include_inactive:
        cond = and_(cond, ProviderAvailability.is_active.is_(True))

    total_stmt = select(func.count()).select_from(ProviderAvailability).where(cond)
    total = (await session.execute(total_stmt)).scalar_one()

    stmt = (
        select(ProviderAvailability)
        .where(cond)
        .order_by(ProviderAvailability.start_date, ProviderAvailability.start_time)
        .limit(limit)
        .offset(offset)
    )
    rows = (await session.execute(stmt)).scalars().all()
    return list(rows), total


async def search(
    session: AsyncSession, provider_id: UUID, q: str
) -> List[ProviderAvailability]:
    """
    Case-insensitive substring match on title or description (active only).
    LIKE wildcards in q match literally.
    """
    term = q.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{term}%"
    stmt = (
        select(ProviderAvailability)
        .where(
            and_(
                ProviderAvailability.provider_id == provider_id,
                ProviderAvailability.is_active.is_(True),
                or_(
                    func.lower(ProviderAvailability.title).like(pattern, escape="\\"),
                    func.lower(ProviderAvailability.description).like(pattern, escape="\\"),
                ),
            )
        )
        .order_by(ProviderAvailability.start_date, ProviderAvailability.start_time)
    )
    return list((await session.execute(stmt)).scalars().all())


async def list_all_for_provider(
    session: AsyncSession, provider_id: UUID
) -> List[ProviderAvailability]:
    stmt = select(ProviderAvailability).where(ProviderAvailability.provider_id == provider_id)
    return list((await session.execute(stmt)).scalars().all())
