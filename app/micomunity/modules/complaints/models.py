from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.micomunity.models import Base


class Complaint(Base):
    __tablename__ = "complaints"
    __table_args__ = (
        Index("idx_complaints_community_created", "community_id", "created_at"),
        Index("idx_complaints_author", "author_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    image_key: Mapped[str | None] = mapped_column(String(512), nullable=True)

    response: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.now)
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    community_id: Mapped[int] = mapped_column(ForeignKey("communities.id", ondelete="CASCADE"), nullable=False)

    author = relationship("User", foreign_keys=[author_id], lazy="selectin")
