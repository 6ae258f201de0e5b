from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.micomunity.audit import record_event
from app.micomunity.constants import ROLE_ADMIN, ROLE_PRESIDENT
from app.micomunity.errors import NotFound, PermissionDenied, ValidationError
from app.micomunity.models import User
from app.micomunity.modules.community.service import ensure_same_community, require_community
from app.micomunity.modules.incidents.models import Incident

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session

logger = logging.getLogger(__name__)

STATUS_OPEN = "OPEN"
STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_RESOLVED = "RESOLVED"
STATUS_CANCELLED = "CANCELLED"
STATUSES = (STATUS_OPEN, STATUS_IN_PROGRESS, STATUS_RESOLVED, STATUS_CANCELLED)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_OPEN: frozenset({STATUS_IN_PROGRESS, STATUS_CANCELLED}),
    STATUS_IN_PROGRESS: frozenset({STATUS_RESOLVED, STATUS_CANCELLED}),
    STATUS_RESOLVED: frozenset({STATUS_CANCELLED}),
    STATUS_CANCELLED: frozenset(),
}

SORT_FIELDS = {
    "created_at": Incident.created_at,
    "title": Incident.title,
    "status": Incident.status,
}

TITLE_MAX = 100
DESCRIPTION_MAX = 1000
LOCATION_MAX = 200


def check_transition(current: str, new: str) -> None:
    if new not in STATUSES:
        raise ValidationError(f"Unknown status: {new!r}", details={"allowed": list(STATUSES)})
    if current == STATUS_CANCELLED:
        raise ValidationError("A cancelled incident cannot be modified.")
    if new not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        allowed = sorted(ALLOWED_TRANSITIONS.get(current, frozenset()))
        raise ValidationError(
            f"From {current} the status can only change to {' or '.join(allowed)}.",
            details={"current": current, "allowed": allowed},
        )


def _clean_fields(title: str, description: str, location: str) -> tuple[str, str, str]:
    title = (title or "").strip()
    description = (description or "").strip()
    location = (location or "").strip()
    errors: dict[str, str] = {}
    if not title:
        errors["title"] = "Title is required."
    elif len(title) > TITLE_MAX:
        errors["title"] = f"Title must be at most {TITLE_MAX} characters."
    if not description:
        errors["description"] = "Description is required."
    elif len(description) > DESCRIPTION_MAX:
        errors["description"] = f"Description must be at most {DESCRIPTION_MAX} characters."
    if len(location) > LOCATION_MAX:
        errors["location"] = f"Location must be at most {LOCATION_MAX} characters."
    if errors:
        raise ValidationError("Invalid incident.", details=errors)
    return title, description, location


def create_incident(
    s: "Session",
    user: User,
    *,
    title: str,
    description: str,
    location: str,
    image_key: str | None = None,
) -> Incident:
    community = require_community(user)
    title, description, location = _clean_fields(title, description, location)
    incident = Incident(
        title=title,
        description=description,
        location=location,
        image_key=image_key,
        status=STATUS_OPEN,
        creator_id=user.id,
        community_id=community.id,
    )
    s.add(incident)
    s.flush()
    record_event(
        s,
        actor=user,
        action="incident.create",
        entity_type="Incident",
        entity_id=str(incident.id),
        metadata={"title": title, "has_image": bool(image_key)},
    )
    logger.info("Incident %s created by %s", incident.id, user.email)
    return incident


def community_incidents_query(s: "Session", user: User, sort_field: str, sort_direction: str) -> "Query":
    community = require_community(user)
    column = SORT_FIELDS.get(sort_field)
    if column is None:
        raise ValidationError(
            f"Cannot sort by {sort_field!r}.",
            details={"allowed": sorted(SORT_FIELDS)},
        )
    order = column.asc() if (sort_direction or "").lower() == "asc" else column.desc()
    return (
        s.query(Incident)
        .filter(Incident.community_id == community.id)
        .order_by(order, Incident.id.desc())
    )


def get_incident(s: "Session", incident_id: int) -> Incident:
    incident = s.get(Incident, incident_id)
    if not incident:
        raise NotFound("Incident not found.")
    return incident


def update_status(s: "Session", user: User, incident_id: int, new_status: str) -> Incident:
    if user.role not in (ROLE_PRESIDENT, ROLE_ADMIN):
        raise PermissionDenied("Only the president or an administrator can update incident status.")
    incident = get_incident(s, incident_id)
    ensure_same_community(user, incident.community_id, "You cannot update incidents of another community.")

    new_status = (new_status or "").strip().upper()
    old_status = incident.status
    check_transition(old_status, new_status)
    incident.status = new_status

    record_event(
        s,
        actor=user,
        action="incident.status_change",
        entity_type="Incident",
        entity_id=str(incident.id),
        metadata={"from": old_status, "to": new_status},
    )
    logger.info("Incident %s: %s -> %s by %s", incident.id, old_status, new_status, user.email)
    return incident


def delete_incident(s: "Session", user: User, incident_id: int) -> str | None:
    """Delete the incident and return its image key (caller removes the file after commit)."""
    incident = get_incident(s, incident_id)
    ensure_same_community(user, incident.community_id, "You cannot delete incidents of another community.")
    is_author = incident.creator_id == user.id
    if user.role not in (ROLE_ADMIN, ROLE_PRESIDENT) and not is_author:
        raise PermissionDenied("Only an administrator, the president or the author can delete this incident.")

    image_key = incident.image_key
    record_event(
        s,
        actor=user,
        action="incident.delete",
        entity_type="Incident",
        entity_id=str(incident.id),
        metadata={"title": incident.title},
    )
    s.delete(incident)
    logger.info("Incident %s deleted by %s", incident_id, user.email)
    return image_key


def can_view_file(s: "Session", user: User, image_key: str) -> bool:
    incident = s.query(Incident).filter(Incident.image_key == image_key).one_or_none()
    return bool(incident and user.community_id == incident.community_id)
