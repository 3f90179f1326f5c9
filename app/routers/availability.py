# app/routers/availability.py
from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import SchedulingError, as_http_exception
from app.core.security import Principal
from app.db.sql import get_session
from app.dependencies import require_roles
from app.modules.availability.schemas import (
    AvailabilityDetail,
    AvailabilityPage,
    AvailabilityPublic,
    AvailabilityRequest,
    ProviderAvailabilityStats,
)
from app.modules.availability.service import (
    create_availability_svc,
    delete_availability_svc,
    get_availability_svc,
    get_statistics_svc,
    list_availabilities_svc,
    search_availabilities_svc,
    update_availability_svc,
)
from app.modules.slots.schemas import SlotDetail
from app.modules.slots.service import list_availability_slots_svc

router = APIRouter(prefix="/provider/availability", tags=["provider-availability"])


@router.post(
    "",
    response_model=AvailabilityDetail,
    status_code=status.HTTP_201_CREATED,
    summary="Create a schedule definition and generate its slots",
)
async def create_availability(
    payload: AvailabilityRequest,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider")),
):
    try:
        return await create_availability_svc(session, principal.id, payload)
    except SchedulingError as e:
        raise as_http_exception(e)


@router.get(
    "",
    response_model=AvailabilityPage,
    summary="List the current provider's schedule definitions",
)
async def list_availabilities(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    include_inactive: bool = Query(False),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider")),
):
    return await list_availabilities_svc(
        session, principal.id, limit, offset, include_inactive=include_inactive
    )


@router.get(
    "/search",
    response_model=List[AvailabilityPublic],
    summary="Search definitions by title or description",
)
async def search_availabilities(
    q: str = Query(..., min_length=1, max_length=100),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider")),
):
    return await search_availabilities_svc(session, principal.id, q)


@router.get(
    "/stats",
    response_model=ProviderAvailabilityStats,
    summary="Availability statistics for the current provider",
)
async def availability_stats(
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider")),
):
    return await get_statistics_svc(session, principal.id)


@router.get(
    "/{availability_id}",
    response_model=AvailabilityDetail,
)
async def get_availability(
    availability_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider")),
):
    try:
        return await get_availability_svc(session, principal.id, availability_id)
    except SchedulingError as e:
        raise as_http_exception(e)


@router.put(
    "/{availability_id}",
    response_model=AvailabilityDetail,
    summary="Replace a definition (slots regenerate when timing changes)",
)
async def update_availability(
    availability_id: UUID,
    payload: AvailabilityRequest,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider")),
):
    try:
        return await update_availability_svc(session, principal.id, availability_id, payload)
    except SchedulingError as e:
        raise as_http_exception(e)


@router.delete(
    "/{availability_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Deactivate a definition without upcoming bookings",
)
async def delete_availability(
    availability_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider")),
):
    try:
        await delete_availability_svc(session, principal.id, availability_id)
    except SchedulingError as e:
        raise as_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{availability_id}/slots",
    response_model=List[SlotDetail],
    summary="Slots generated from one definition",
)
async def availability_slots(
    availability_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider")),
):
    try:
        return await list_availability_slots_svc(session, principal.id, availability_id)
    except SchedulingError as e:
        raise as_http_exception(e)
