# app/modules/slots/models.py
from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, ReprMixin, TimestampMixin, UUIDPKMixin


class SlotStatus(PyEnum):
    AVAILABLE = "AVAILABLE"
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    BOOKED = "BOOKED"
    BLOCKED = "BLOCKED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


# Statuses that hold the (provider, date, start_time) key
OCCUPYING = frozenset(
    {
        SlotStatus.AVAILABLE,
        SlotStatus.BLOCKED,
        SlotStatus.PENDING_CONFIRMATION,
        SlotStatus.BOOKED,
        SlotStatus.COMPLETED,
    }
)
# Statuses that keep a definition from being deleted
BOOKED_LIKE = frozenset({SlotStatus.BOOKED, SlotStatus.PENDING_CONFIRMATION})
# Statuses wiped and regenerated when a definition's timing changes
REGENERABLE = frozenset({SlotStatus.AVAILABLE, SlotStatus.BLOCKED})
# Statuses that carry a patient
WITH_PATIENT = frozenset(
    {
        SlotStatus.BOOKED,
        SlotStatus.PENDING_CONFIRMATION,
        SlotStatus.COMPLETED,
        SlotStatus.NO_SHOW,
    }
)


def _sql_in(statuses) -> str:
    return "status IN (%s)" % ", ".join(sorted(f"'{s.value}'" for s in statuses))


_OCCUPYING_SQL = _sql_in(OCCUPYING)


class AvailabilitySlot(UUIDPKMixin, TimestampMixin, ReprMixin, Base):
    """
    One concrete bookable window generated from a ProviderAvailability.
    The owning definition is referenced by id only.
    """

    __tablename__ = "availability_slots"

    availability_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    provider_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)

    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=SlotStatus.AVAILABLE.value
    )

    # Occupant
    patient_id: Mapped[Optional[uuid.UUID]] = mapped_column(nullable=True, index=True)
    patient_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    patient_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    patient_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    reason_for_visit: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    appointment_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Lifecycle timestamps
    booking_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancellation_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    cancelled_by_provider: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    confirmation_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    check_in_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completion_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    reminder_sent_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Flags
    is_available: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    requires_confirmation: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    reminder_sent: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    checked_in: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    no_show: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    provider_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_slots_time_order"),
        CheckConstraint(_sql_in(SlotStatus), name="ck_slots_status_valid"),
        CheckConstraint(
            "(patient_id IS NOT NULL) = (%s)" % _sql_in(WITH_PATIENT),
            name="ck_slots_patient_matches_status",
        ),
        CheckConstraint(
            "duration_minutes IS NULL OR duration_minutes > 0",
            name="ck_slots_duration_positive",
        ),
        # At most one occupying slot per provider and start time
        Index(
            "uq_slots_provider_date_start_occupying",
            "provider_id",
            "slot_date",
            "start_time",
            unique=True,
            postgresql_where=text(_OCCUPYING_SQL),
            sqlite_where=text(_OCCUPYING_SQL),
        ),
        Index("ix_slots_date_start", "slot_date", "start_time"),
        Index("ix_slots_status", "status"),
        Index("ix_slots_provider_date", "provider_id", "slot_date"),
    )

    @property
    def status_enum(self) -> SlotStatus:
        return SlotStatus(self.status)

    @property
    def slot_datetime(self) -> datetime:
        return datetime.combine(self.slot_date, self.start_time)

    @property
    def slot_end_datetime(self) -> datetime:
        return datetime.combine(self.slot_date, self.end_time)

    @property
    def duration(self) -> int:
        delta = self.slot_end_datetime - self.slot_datetime
        return int(delta.total_seconds() // 60)

    @property
    def time_range(self) -> str:
        return "%s - %s" % (self.start_time.strftime("%H:%M"), self.end_time.strftime("%H:%M"))

    @property
    def patient_display_name(self) -> str:
        """First name and last initial ("Jane D."), or "Patient"."""
        if not self.patient_name or not self.patient_name.strip():
            return "Patient"
        parts = self.patient_name.split()
        if len(parts) == 1:
            return parts[0]
        return "%s %s." % (parts[0], parts[-1][0])

    def needs_reminder(self, now: datetime) -> bool:
        """
        `now` is naive wall-clock time in the slot's time zone.
        """
        if self.status != SlotStatus.BOOKED.value or self.reminder_sent:
            return False
        starts = self.slot_datetime
        return now < starts <= now + timedelta(hours=24)

    @property
    def summary(self) -> str:
        return "%s %s [%s] %s" % (
            self.slot_date.isoformat(),
            self.time_range,
            self.status,
            self.patient_display_name if self.patient_id else "Available",
        )
