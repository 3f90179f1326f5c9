# app/modules/providers/models.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, ReprMixin, TimestampMixin, UUIDPKMixin


class Provider(UUIDPKMixin, TimestampMixin, ReprMixin, Base):
    """
    Healthcare provider as seen by the scheduling core.

    Rows are owned by the registration service; this service only reads them
    (existence / is_active) and row-locks them to serialize per-provider writes.
    """

    __tablename__ = "providers"

    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    specialization: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )

    __table_args__ = (
        UniqueConstraint("email", name="uq_providers_email"),
        CheckConstraint("email = lower(email)", name="ck_providers_email_lowercase"),
        Index("ix_providers_active", "is_active"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
