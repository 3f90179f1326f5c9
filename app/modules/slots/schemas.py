# app/modules/slots/schemas.py
from __future__ import annotations

from datetime import date, datetime, time
from typing import Annotated, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, StringConstraints, field_validator

NameStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
PhoneStr = Annotated[str, StringConstraints(pattern=r"^\+?[1-9]\d{1,14}$")]  # E.164 simple


class BookSlotRequest(BaseModel):
    """
    Booking payload.
    - patient_id is taken from the bearer token, not from the body.
    """
    patient_name: Optional[NameStr] = None
    patient_email: Optional[EmailStr] = None
    patient_phone: Optional[PhoneStr] = None
    reason_for_visit: Optional[str] = Field(default=None, max_length=500)
    appointment_notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("patient_email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class CancelSlotRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class CompleteSlotRequest(BaseModel):
    provider_notes: Optional[str] = Field(default=None, max_length=2000)
    duration_minutes: Optional[int] = Field(default=None, ge=1, le=480)


class SlotPublic(BaseModel):
    """
    Slot as shown to anyone allowed to browse a provider's calendar.
    The occupant is reduced to a masked display name.
    """
    id: UUID
    availability_id: UUID
    provider_id: UUID
    slot_date: date
    start_time: time
    end_time: time
    time_range: str
    status: str
    is_available: bool
    requires_confirmation: bool
    patient_display_name: str

    class Config:
        from_attributes = True


class SlotDetail(SlotPublic):
    """
    Full slot, for the owning provider, the holding patient and admins.
    """
    patient_id: Optional[UUID] = None
    patient_name: Optional[str] = None
    patient_email: Optional[str] = None
    patient_phone: Optional[str] = None
    reason_for_visit: Optional[str] = None
    appointment_notes: Optional[str] = None

    booking_timestamp: Optional[datetime] = None
    confirmation_timestamp: Optional[datetime] = None
    check_in_timestamp: Optional[datetime] = None
    completion_timestamp: Optional[datetime] = None
    cancellation_timestamp: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by_provider: Optional[bool] = None
    reminder_sent: bool
    reminder_sent_timestamp: Optional[datetime] = None

    checked_in: bool
    completed: bool
    no_show: bool
    provider_notes: Optional[str] = None
    duration_minutes: Optional[int] = None

    version: int
    created_at: datetime
    updated_at: datetime
