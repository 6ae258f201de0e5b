from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.micomunity.models import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class CommonArea(Base):
    __tablename__ = "common_areas"
    __table_args__ = (
        UniqueConstraint("community_id", "name", name="uq_common_area_community_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    community_id: Mapped[int] = mapped_column(ForeignKey("communities.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.now)

    reservations: Mapped[list["Reservation"]] = relationship(
        "Reservation",
        back_populates="area",
        cascade="all, delete-orphan",
        lazy="select",
    )


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        Index("idx_reservations_area_date", "area_id", "date"),
        Index("idx_reservations_user", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    area_id: Mapped[str] = mapped_column(ForeignKey("common_areas.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)

    # ACTIVE -> CANCELLED
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.now)
    cancelled_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    area: Mapped[CommonArea] = relationship("CommonArea", back_populates="reservations", lazy="selectin")
    user = relationship("User", foreign_keys=[user_id], lazy="selectin")
