# app/routers/slots.py
from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import SchedulingError, as_http_exception
from app.core.security import Principal
from app.db.sql import get_session
from app.dependencies import get_current_principal, require_roles
from app.modules.slots.models import SlotStatus
from app.modules.slots.schemas import (
    BookSlotRequest,
    CancelSlotRequest,
    CompleteSlotRequest,
    SlotDetail,
    SlotPublic,
)
from app.modules.slots import service as svc

router = APIRouter(tags=["slots"])


# Provider calendar (any authenticated user)
@router.get(
    "/providers/{provider_id}/slots",
    response_model=List[SlotPublic],
    summary="Slots of a provider between two dates",
)
async def provider_slots(
    provider_id: UUID,
    start_date: date = Query(...),
    end_date: date = Query(...),
    slot_status: Optional[List[SlotStatus]] = Query(None, alias="status"),
    only_bookable: bool = Query(False),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
):
    try:
        return await svc.list_provider_slots_svc(
            session,
            provider_id,
            start_date,
            end_date,
            statuses=slot_status,
            only_bookable=only_bookable,
        )
    except SchedulingError as e:
        raise as_http_exception(e)


@router.get(
    "/slots/{slot_id}",
    response_model=None,
    summary="Full slot for its provider or patient, masked view otherwise",
)
async def get_slot(
    slot_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
):
    try:
        return await svc.get_slot_svc(session, slot_id, principal)
    except SchedulingError as e:
        raise as_http_exception(e)


@router.post(
    "/slots/{slot_id}/book",
    response_model=SlotDetail,
    summary="Book a slot for the current patient",
)
async def book_slot(
    slot_id: UUID,
    payload: Optional[BookSlotRequest] = None,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("patient")),
):
    try:
        return await svc.book_slot_svc(session, slot_id, principal.id, payload or BookSlotRequest())
    except SchedulingError as e:
        raise as_http_exception(e)


@router.post(
    "/slots/{slot_id}/cancel",
    response_model=SlotDetail,
    summary="Cancel a booking (holding patient or owning provider)",
)
async def cancel_slot(
    slot_id: UUID,
    payload: Optional[CancelSlotRequest] = None,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
):
    try:
        return await svc.cancel_slot_svc(
            session, slot_id, principal, payload.reason if payload else None
        )
    except SchedulingError as e:
        raise as_http_exception(e)


@router.post("/slots/{slot_id}/confirm", response_model=SlotDetail)
async def confirm_slot(
    slot_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider", "admin")),
):
    try:
        return await svc.confirm_slot_svc(session, slot_id, principal)
    except SchedulingError as e:
        raise as_http_exception(e)


@router.post("/slots/{slot_id}/check-in", response_model=SlotDetail)
async def check_in(
    slot_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider", "admin")),
):
    try:
        return await svc.check_in_svc(session, slot_id, principal)
    except SchedulingError as e:
        raise as_http_exception(e)


@router.post("/slots/{slot_id}/complete", response_model=SlotDetail)
async def complete_slot(
    slot_id: UUID,
    payload: Optional[CompleteSlotRequest] = None,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider", "admin")),
):
    try:
        return await svc.complete_slot_svc(
            session, slot_id, principal, payload or CompleteSlotRequest()
        )
    except SchedulingError as e:
        raise as_http_exception(e)


@router.post("/slots/{slot_id}/no-show", response_model=SlotDetail)
async def mark_no_show(
    slot_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider", "admin")),
):
    try:
        return await svc.mark_no_show_svc(session, slot_id, principal)
    except SchedulingError as e:
        raise as_http_exception(e)


@router.post("/slots/{slot_id}/block", response_model=SlotDetail)
async def block_slot(
    slot_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider", "admin")),
):
    try:
        return await svc.block_slot_svc(session, slot_id, principal)
    except SchedulingError as e:
        raise as_http_exception(e)


@router.post("/slots/{slot_id}/unblock", response_model=SlotDetail)
async def unblock_slot(
    slot_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider", "admin")),
):
    try:
        return await svc.unblock_slot_svc(session, slot_id, principal)
    except SchedulingError as e:
        raise as_http_exception(e)


@router.post("/slots/{slot_id}/reminder-sent", response_model=SlotDetail)
async def reminder_sent(
    slot_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("provider", "admin")),
):
    try:
        return await svc.mark_reminder_sent_svc(session, slot_id, principal)
    except SchedulingError as e:
        raise as_http_exception(e)
