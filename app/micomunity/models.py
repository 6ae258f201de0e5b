from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Community(Base):
    __tablename__ = "communities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(512), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(5), nullable=False)
    community_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    # communities <-> users is a cycle; the FK is added after both tables exist.
    president_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL", use_alter=True, name="fk_communities_president_id"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.now)

    president: Mapped["User | None"] = relationship(
        "User",
        foreign_keys=[president_id],
        lazy="selectin",
        post_update=True,
    )
    members: Mapped[list["User"]] = relationship(
        "User",
        back_populates="community",
        foreign_keys="User.community_id",
        lazy="selectin",
    )


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_community", "community_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    dni: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    floor: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="RESIDENT")  # PRESIDENT, RESIDENT, ADMIN
    community_id: Mapped[int | None] = mapped_column(ForeignKey("communities.id", ondelete="SET NULL"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.now)

    community: Mapped[Community | None] = relationship(
        "Community",
        back_populates="members",
        foreign_keys=[community_id],
        lazy="selectin",
    )


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Keep this table intentionally generic; module tables do not reference it.
    """

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.now)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "reservation.create"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Reservation"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)  # string for flexibility (uuid/int)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.micomunity.modules.incidents.models import Incident  # noqa: E402,F401
from app.micomunity.modules.complaints.models import Complaint  # noqa: E402,F401
from app.micomunity.modules.documents.models import Document, DocumentFile  # noqa: E402,F401
from app.micomunity.modules.posts.models import Post  # noqa: E402,F401
from app.micomunity.modules.reservations.models import CommonArea, Reservation  # noqa: E402,F401
from app.micomunity.modules.voting.models import Poll, Vote  # noqa: E402,F401
from app.micomunity.modules.chat.models import ChatMessage  # noqa: E402,F401
