# app/modules/availability/models.py
from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta
from enum import Enum as PyEnum
from typing import List, Optional, Set
from zoneinfo import ZoneInfo

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    Index,
    Integer,
    String,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, ReprMixin, TimestampMixin, UUIDPKMixin


class RecurrenceType(PyEnum):
    ONE_TIME = "ONE_TIME"
    WEEKLY = "WEEKLY"
    DAILY = "DAILY"
    CUSTOM = "CUSTOM"


class LocationType(PyEnum):
    IN_PERSON = "IN_PERSON"
    VIRTUAL = "VIRTUAL"
    HYBRID = "HYBRID"


class AppointmentType(PyEnum):
    CONSULTATION = "CONSULTATION"
    FOLLOW_UP = "FOLLOW_UP"
    PROCEDURE = "PROCEDURE"
    THERAPY = "THERAPY"
    EMERGENCY = "EMERGENCY"
    ROUTINE_CHECKUP = "ROUTINE_CHECKUP"


def _in_list(column: str, enum_cls) -> str:
    values = ", ".join(f"'{m.value}'" for m in enum_cls)
    return f"{column} IN ({values})"


class ProviderAvailability(UUIDPKMixin, TimestampMixin, ReprMixin, Base):
    """
    Schedule definition: a provider-authored one-time or recurring template
    from which concrete AvailabilitySlot rows are generated.
    """

    __tablename__ = "provider_availability"

    provider_id: Mapped[uuid.UUID] = mapped_column(
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    recurrence_type: Mapped[str] = mapped_column(String(20), nullable=False)
    # 1=Monday ... 7=Sunday, only for WEEKLY
    day_of_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)  # None = open-ended
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    slot_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    buffer_time_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    time_zone: Mapped[str] = mapped_column(String(50), nullable=False)

    location_type: Mapped[str] = mapped_column(String(20), nullable=False)
    location_details: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    appointment_type: Mapped[str] = mapped_column(String(20), nullable=False)

    max_advance_booking_days: Mapped[int] = mapped_column(
        Integer, nullable=False, default=90, server_default="90"
    )
    min_advance_booking_hours: Mapped[int] = mapped_column(
        Integer, nullable=False, default=2, server_default="2"
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    allow_online_booking: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    requires_approval: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    # ISO dates ("YYYY-MM-DD"); always reassigned as a whole list
    excluded_dates: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Optimistic concurrency (compare-and-swap on UPDATE)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_avail_time_order"),
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date", name="ck_avail_date_order"
        ),
        CheckConstraint(
            "slot_duration_minutes BETWEEN 5 AND 480", name="ck_avail_slot_duration"
        ),
        CheckConstraint(
            "buffer_time_minutes BETWEEN 0 AND 120", name="ck_avail_buffer_time"
        ),
        CheckConstraint(
            "recurrence_type <> 'WEEKLY' OR day_of_week IS NOT NULL",
            name="ck_avail_weekly_day",
        ),
        CheckConstraint(
            "day_of_week IS NULL OR day_of_week BETWEEN 1 AND 7",
            name="ck_avail_day_of_week_range",
        ),
        CheckConstraint(_in_list("recurrence_type", RecurrenceType), name="ck_avail_recurrence_valid"),
        CheckConstraint(_in_list("location_type", LocationType), name="ck_avail_location_valid"),
        CheckConstraint(_in_list("appointment_type", AppointmentType), name="ck_avail_appt_type_valid"),
        Index("ix_avail_provider_active", "provider_id", "is_active"),
        Index("ix_avail_date_range", "start_date", "end_date"),
        Index("ix_avail_day_of_week", "day_of_week"),
    )

    @property
    def recurrence(self) -> RecurrenceType:
        return RecurrenceType(self.recurrence_type)

    @recurrence.setter
    def recurrence(self, value: RecurrenceType):
        self.recurrence_type = value.value

    @property
    def excluded_date_set(self) -> Set[date]:
        return {date.fromisoformat(d) for d in (self.excluded_dates or [])}

    def set_excluded_dates(self, dates) -> None:
        self.excluded_dates = sorted({d.isoformat() for d in (dates or [])})

    @property
    def total_slot_duration(self) -> int:
        return self.slot_duration_minutes + self.buffer_time_minutes

    @property
    def window_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start

    @property
    def max_slots_per_day(self) -> int:
        if self.total_slot_duration <= 0:
            return 0
        return self.window_minutes // self.total_slot_duration

    @property
    def time_range(self) -> str:
        return "%s - %s (%s)" % (
            self.start_time.strftime("%H:%M"),
            self.end_time.strftime("%H:%M"),
            self.time_zone,
        )

    def is_booking_allowed(self, requested: datetime, now: datetime | None = None) -> bool:
        """
        Booking policy for an appointment starting at `requested` (naive,
        wall-clock time in this definition's time zone).
        """
        if not self.allow_online_booking:
            return False
        tz = ZoneInfo(self.time_zone)
        local_now = (now or datetime.now(tz)).astimezone(tz).replace(tzinfo=None)

        if requested < local_now + timedelta(hours=self.min_advance_booking_hours):
            return False
        if requested > local_now + timedelta(days=self.max_advance_booking_days):
            return False
        return True
