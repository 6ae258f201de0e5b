"""
Community membership: the caller's community, moving between communities and
handing the presidency to another resident.

``require_community`` / ``ensure_same_community`` are the tenant guards every
other module uses before touching community-scoped rows.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.micomunity.audit import record_event
from app.micomunity.constants import ROLE_PRESIDENT, ROLE_RESIDENT
from app.micomunity.errors import NotFound, PermissionDenied, ValidationError
from app.micomunity.models import Community, User

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def require_community(user: User) -> Community:
    if user.community is None:
        raise ValidationError("User does not belong to any community.")
    return user.community


def ensure_same_community(user: User, community_id: int | None, message: str) -> None:
    if user.community_id is None or user.community_id != community_id:
        raise PermissionDenied(message)


def my_community(s: "Session", user: User) -> dict:
    community = require_community(user)
    president = community.president
    residents = (
        s.query(User)
        .filter(User.community_id == community.id)
        .order_by(User.full_name.asc())
        .all()
    )
    logger.info("Found %d members in community %s", len(residents), community.community_code)
    return {
        "name": community.name,
        "community_code": community.community_code,
        "address": community.address,
        "postal_code": community.postal_code,
        "president_name": president.full_name if president else "Not assigned",
        "residents": [{"id": u.id, "full_name": u.full_name, "floor": u.floor} for u in residents],
    }


def community_members(s: "Session", user: User) -> list[dict]:
    community = require_community(user)
    users = (
        s.query(User)
        .filter(User.community_id == community.id)
        .order_by(User.full_name.asc())
        .all()
    )
    return [
        {"id": u.id, "full_name": u.full_name, "email": u.email, "floor": u.floor, "role": u.role}
        for u in users
    ]


def change_community(s: "Session", user: User, new_code: str) -> Community:
    new_code = (new_code or "").strip()
    if not new_code:
        raise ValidationError("new_community_code is required.")
    target = s.query(Community).filter(Community.community_code == new_code).one_or_none()
    if not target:
        raise NotFound("No community exists with the given code.")
    if user.role == ROLE_PRESIDENT:
        raise ValidationError("As president, you must transfer the presidency before changing community.")
    if target.id == user.community_id:
        raise ValidationError("You already belong to this community.")

    old_id = user.community_id
    user.community = target
    record_event(
        s,
        actor=user,
        action="community.change",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"from_community_id": old_id, "to_community_id": target.id},
    )
    logger.info("User %s moved to community %s", user.email, target.community_code)
    return target


def transfer_presidency(s: "Session", president: User, new_president_id: int | None) -> User:
    if president.role != ROLE_PRESIDENT:
        raise PermissionDenied("Only the president can transfer the presidency.")
    if new_president_id is None:
        raise ValidationError("new_president_id is required.")
    community = require_community(president)

    candidate = s.get(User, new_president_id)
    if not candidate:
        raise NotFound("User not found.")
    if candidate.community_id != community.id:
        raise ValidationError("The new president must belong to the same community.")
    if candidate.id == president.id:
        raise ValidationError("You cannot transfer the presidency to yourself.")
    if candidate.role != ROLE_RESIDENT:
        raise ValidationError("The presidency can only be transferred to a resident.")

    president.role = ROLE_RESIDENT
    candidate.role = ROLE_PRESIDENT
    community.president = candidate
    s.flush()

    record_event(
        s,
        actor=president,
        action="community.transfer_presidency",
        entity_type="Community",
        entity_id=str(community.id),
        metadata={"from_user_id": president.id, "to_user_id": candidate.id},
    )
    logger.info("Presidency of %s transferred from %s to %s", community.community_code, president.email, candidate.email)
    return candidate
