from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.micomunity.models import Base


class Poll(Base):
    __tablename__ = "polls"
    __table_args__ = (
        Index("idx_polls_community_ends", "community_id", "ends_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    option1: Mapped[str] = mapped_column(String(255), nullable=False)
    option2: Mapped[str] = mapped_column(String(255), nullable=False)
    option3: Mapped[str] = mapped_column(String(255), nullable=False)

    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.now)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    community_id: Mapped[int] = mapped_column(ForeignKey("communities.id", ondelete="CASCADE"), nullable=False)

    creator = relationship("User", foreign_keys=[creator_id], lazy="selectin")
    votes: Mapped[list["Vote"]] = relationship(
        "Vote",
        back_populates="poll",
        cascade="all, delete-orphan",
        lazy="select",
    )

    @property
    def options(self) -> list[str]:
        return [self.option1, self.option2, self.option3]


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("poll_id", "voter_id", name="uq_vote_poll_voter"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    poll_id: Mapped[int] = mapped_column(ForeignKey("polls.id", ondelete="CASCADE"), nullable=False)
    voter_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    option: Mapped[str] = mapped_column(String(255), nullable=False)
    # "<voter_id>_<poll_id>"
    unique_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.now)

    poll: Mapped[Poll] = relationship("Poll", back_populates="votes", lazy="selectin")
