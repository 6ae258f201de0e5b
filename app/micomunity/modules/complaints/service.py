from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.micomunity.audit import record_event
from app.micomunity.constants import ANONYMOUS_NAME, ROLE_PRESIDENT
from app.micomunity.errors import NotFound, PermissionDenied, ValidationError
from app.micomunity.models import User
from app.micomunity.modules.community.service import ensure_same_community, require_community
from app.micomunity.modules.complaints.models import Complaint
from app.micomunity.utils import local_now

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session

logger = logging.getLogger(__name__)

CONTENT_MAX = 2000
RESPONSE_MAX = 2000


def author_display_name(complaint: Complaint) -> str:
    if complaint.anonymous or complaint.author is None:
        return ANONYMOUS_NAME
    return complaint.author.full_name


def create_complaint(
    s: "Session",
    user: User,
    *,
    content: str,
    anonymous: bool,
    image_key: str | None = None,
) -> Complaint:
    community = require_community(user)
    content = (content or "").strip()
    if not content:
        raise ValidationError("Content is required.")
    if len(content) > CONTENT_MAX:
        raise ValidationError(f"Content must be at most {CONTENT_MAX} characters.")

    complaint = Complaint(
        content=content,
        anonymous=anonymous,
        image_key=image_key,
        author_id=user.id,
        community_id=community.id,
        created_at=local_now(),
    )
    s.add(complaint)
    s.flush()
    record_event(
        s,
        actor=user,
        action="complaint.create",
        entity_type="Complaint",
        entity_id=str(complaint.id),
        metadata={"anonymous": anonymous, "has_image": bool(image_key)},
    )
    return complaint


def my_complaints_query(s: "Session", user: User) -> "Query":
    return (
        s.query(Complaint)
        .filter(Complaint.author_id == user.id)
        .order_by(Complaint.created_at.desc(), Complaint.id.desc())
    )


def community_complaints_query(s: "Session", user: User) -> "Query":
    community = require_community(user)
    return (
        s.query(Complaint)
        .filter(Complaint.community_id == community.id)
        .order_by(Complaint.created_at.desc(), Complaint.id.desc())
    )


def _get(s: "Session", complaint_id: int) -> Complaint:
    complaint = s.get(Complaint, complaint_id)
    if not complaint:
        raise NotFound("Complaint not found.")
    return complaint


def reply_complaint(s: "Session", user: User, complaint_id: int, response: str) -> Complaint:
    complaint = _get(s, complaint_id)
    ensure_same_community(user, complaint.community_id, "You cannot reply to complaints of another community.")
    response = (response or "").strip()
    if not response:
        raise ValidationError("Response is required.")
    if len(response) > RESPONSE_MAX:
        raise ValidationError(f"Response must be at most {RESPONSE_MAX} characters.")

    complaint.response = response
    complaint.response_date = local_now()
    record_event(
        s,
        actor=user,
        action="complaint.reply",
        entity_type="Complaint",
        entity_id=str(complaint.id),
    )
    logger.info("Complaint %s answered by %s", complaint.id, user.email)
    return complaint


def delete_complaint(s: "Session", user: User, complaint_id: int) -> str | None:
    complaint = _get(s, complaint_id)
    ensure_same_community(user, complaint.community_id, "You cannot delete complaints of another community.")
    if user.role != ROLE_PRESIDENT and complaint.author_id != user.id:
        raise PermissionDenied("Only the president or the author can delete this complaint.")

    image_key = complaint.image_key
    record_event(
        s,
        actor=user,
        action="complaint.delete",
        entity_type="Complaint",
        entity_id=str(complaint.id),
    )
    s.delete(complaint)
    return image_key


def can_view_image(s: "Session", user: User, image_key: str) -> bool:
    complaint = s.query(Complaint).filter(Complaint.image_key == image_key).one_or_none()
    return bool(complaint and user.community_id == complaint.community_id)
