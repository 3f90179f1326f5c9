# app/modules/availability/schemas.py
from __future__ import annotations

from datetime import date, datetime, time
from typing import Annotated, List, Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, StringConstraints, field_validator, model_validator

from app.modules.availability.models import AppointmentType, LocationType, RecurrenceType

TitleStr = Annotated[
    str,
    StringConstraints(
        strip_whitespace=True,
        min_length=3,
        max_length=100,
        pattern=r"^[a-zA-Z0-9\s\-_.,()]+$",
    ),
]

# Upper bound on min_advance_booking_hours per appointment type
MAX_MIN_ADVANCE_HOURS = {
    AppointmentType.EMERGENCY: 4,
    AppointmentType.CONSULTATION: 48,
    AppointmentType.FOLLOW_UP: 48,
    AppointmentType.THERAPY: 72,
    AppointmentType.PROCEDURE: 168,
    AppointmentType.ROUTINE_CHECKUP: 168,
}


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


class AvailabilityRequest(BaseModel):
    """
    Payload to create or replace a schedule definition.
    - provider_id comes from the bearer token, never from the body.
    - time_zone falls back to the configured default on create; an update that
      omits time_zone or the advance-booking limits keeps the stored values.
    """
    title: TitleStr
    description: Optional[str] = Field(default=None, max_length=500)

    recurrence_type: RecurrenceType
    day_of_week: Optional[int] = Field(default=None, ge=1, le=7, description="1=Monday ... 7=Sunday")

    start_date: date
    end_date: Optional[date] = None
    start_time: time
    end_time: time

    slot_duration_minutes: int = Field(default=30, ge=5, le=480)
    buffer_time_minutes: int = Field(default=0, ge=0, le=120)
    time_zone: Optional[str] = Field(default=None, max_length=50)

    location_type: LocationType
    location_details: Optional[str] = Field(default=None, max_length=200)
    appointment_type: AppointmentType

    max_advance_booking_days: int = Field(default=90, ge=1, le=365)
    min_advance_booking_hours: int = Field(default=2, ge=0, le=168)
    allow_online_booking: bool = True
    requires_approval: bool = False

    excluded_dates: List[date] = Field(default_factory=list)

    @field_validator("time_zone")
    @classmethod
    def _known_time_zone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown time zone: {v}")
        return v

    @field_validator("start_time", "end_time")
    @classmethod
    def _drop_seconds(cls, v: time) -> time:
        return v.replace(second=0, microsecond=0, tzinfo=None)

    @model_validator(mode="after")
    def _check_consistency(self):
        if self.recurrence_type is RecurrenceType.WEEKLY and self.day_of_week is None:
            raise ValueError("day_of_week is required for WEEKLY availability")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")

        window = _minutes(self.end_time) - _minutes(self.start_time)
        if window < self.slot_duration_minutes + self.buffer_time_minutes:
            raise ValueError("time window is too short for a single slot")

        if self.location_type is LocationType.IN_PERSON and not (self.location_details or "").strip():
            raise ValueError("location_details is required for IN_PERSON availability")

        limit = MAX_MIN_ADVANCE_HOURS[self.appointment_type]
        if self.min_advance_booking_hours > limit:
            raise ValueError(
                f"min_advance_booking_hours for {self.appointment_type.value} must be <= {limit}"
            )

        for d in self.excluded_dates:
            if d < self.start_date or (self.end_date is not None and d > self.end_date):
                raise ValueError(f"excluded date {d.isoformat()} is outside the availability range")
        return self


class AvailabilityPublic(BaseModel):
    id: UUID
    provider_id: UUID
    title: str
    description: Optional[str] = None
    recurrence_type: str
    day_of_week: Optional[int] = None
    start_date: date
    end_date: Optional[date] = None
    start_time: time
    end_time: time
    slot_duration_minutes: int
    buffer_time_minutes: int
    time_zone: str
    location_type: str
    location_details: Optional[str] = None
    appointment_type: str
    max_advance_booking_days: int
    min_advance_booking_hours: int
    is_active: bool
    allow_online_booking: bool
    requires_approval: bool
    excluded_dates: List[date]
    total_slot_duration: int
    max_slots_per_day: int
    time_range: str
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ConflictItem(BaseModel):
    id: UUID
    title: str
    time_range: str


class SlotStatistics(BaseModel):
    """
    Slot counts for the provider over the rolling statistics window.
    booked_slots includes slots pending confirmation.
    """
    total_slots: int = 0
    available_slots: int = 0
    booked_slots: int = 0
    completed_slots: int = 0
    cancelled_slots: int = 0
    no_show_slots: int = 0
    utilization_rate: float = 0.0


class AvailabilityDetail(BaseModel):
    availability: AvailabilityPublic
    provider_name: str
    statistics: SlotStatistics
    conflicts: List[ConflictItem] = Field(default_factory=list)


class AvailabilityPage(BaseModel):
    items: List[AvailabilityPublic]
    total: int
    limit: int
    offset: int
    has_next: bool


class ProviderAvailabilityStats(BaseModel):
    total_availabilities: int
    active_availabilities: int
    bookable_availabilities: int
    average_slot_duration: float
    utilization_rate: float
