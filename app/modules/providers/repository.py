# app/modules/providers/repository.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.providers.models import Provider


async def get_by_id(session: AsyncSession, provider_id: UUID) -> Optional[Provider]:
    """
    Returns a Provider by primary key or None if not found.
    """
    return await session.get(Provider, provider_id)


async def get_for_update(session: AsyncSession, provider_id: UUID) -> Optional[Provider]:
    """
    Load the provider row with SELECT ... FOR UPDATE.
    Every definition write for one provider goes through this lock, so two
    concurrent creates cannot both pass the conflict check.
    """
    stmt = select(Provider).where(Provider.id == provider_id).with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()

