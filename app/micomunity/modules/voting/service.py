from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable, Mapping

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.micomunity.audit import record_event
from app.micomunity.constants import ROLE_PRESIDENT
from app.micomunity.errors import NotFound, PermissionDenied, ValidationError
from app.micomunity.models import User
from app.micomunity.modules.community.service import require_community
from app.micomunity.modules.voting.models import Poll, Vote
from app.micomunity.utils import iso, local_now, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

MIN_DURATION_HOURS = 1
MAX_DURATION_HOURS = 720


def tally(options: Iterable[str], counted: Mapping[str, int]) -> dict:
    """Count per option (zero included) plus total."""
    counts = {opt: int(counted.get(opt, 0)) for opt in options}
    return {"counts": counts, "total": sum(counts.values())}


def is_finished(poll: Poll, now: datetime) -> bool:
    return now >= poll.ends_at


def create_poll(s: "Session", user: User, payload: dict) -> Poll:
    if user.role != ROLE_PRESIDENT:
        raise PermissionDenied("Only the president can create polls.")
    community = require_community(user)

    title = str(payload.get("title") or "").strip()
    description = str(payload.get("description") or "").strip()
    options = [str(payload.get(k) or "").strip() for k in ("option1", "option2", "option3")]
    duration = parse_int(payload.get("duration_hours"), "duration_hours")

    errors: dict[str, str] = {}
    if not title:
        errors["title"] = "Title is required."
    for i, opt in enumerate(options, start=1):
        if not opt:
            errors[f"option{i}"] = "Option is required."
    if all(options) and len({o.lower() for o in options}) != len(options):
        errors["options"] = "Options must be different from each other."
    if duration is None:
        errors["duration_hours"] = "Duration is required."
    elif not MIN_DURATION_HOURS <= duration <= MAX_DURATION_HOURS:
        errors["duration_hours"] = f"Duration must be between {MIN_DURATION_HOURS} and {MAX_DURATION_HOURS} hours."
    if errors:
        raise ValidationError("Invalid poll.", details=errors)

    now = local_now()
    poll = Poll(
        title=title,
        description=description,
        option1=options[0],
        option2=options[1],
        option3=options[2],
        duration_hours=duration,
        created_at=now,
        ends_at=now + timedelta(hours=duration),
        creator_id=user.id,
        community_id=community.id,
    )
    s.add(poll)
    s.flush()
    record_event(
        s,
        actor=user,
        action="poll.create",
        entity_type="Poll",
        entity_id=str(poll.id),
        metadata={"title": title, "duration_hours": duration},
    )
    logger.info("Poll %s created by %s, ends %s", poll.id, user.email, poll.ends_at)
    return poll


def cast_vote(s: "Session", user: User, poll_id: int | None, option: str) -> Vote:
    if poll_id is None:
        raise ValidationError("poll_id is required.")
    poll = s.get(Poll, poll_id)
    if not poll:
        raise NotFound("Poll not found.")
    if user.community_id is None or poll.community_id != user.community_id:
        raise PermissionDenied("You cannot vote in a poll of another community.")
    if is_finished(poll, local_now()):
        raise ValidationError("The poll has already finished.")
    if _has_voted(s, user, poll):
        raise ValidationError("You have already voted in this poll.")
    option = (option or "").strip()
    if option not in poll.options:
        raise ValidationError("Invalid option.", details={"allowed": poll.options})

    vote = Vote(poll_id=poll.id, voter_id=user.id, option=option, unique_key=f"{user.id}_{poll.id}")
    s.add(vote)
    try:
        s.flush()
    except IntegrityError as e:
        # concurrent double vote
        raise ValidationError("You have already voted in this poll.") from e
    record_event(
        s,
        actor=user,
        action="poll.vote",
        entity_type="Poll",
        entity_id=str(poll.id),
    )
    return vote


def _has_voted(s: "Session", user: User, poll: Poll) -> bool:
    return (
        s.query(Vote.id)
        .filter(Vote.poll_id == poll.id, Vote.voter_id == user.id)
        .first()
        is not None
    )


def poll_payload(s: "Session", poll: Poll, user: User, now: datetime) -> dict:
    finished = is_finished(poll, now)
    voted = _has_voted(s, user, poll)
    out = {
        "id": poll.id,
        "title": poll.title,
        "description": poll.description,
        "option1": poll.option1,
        "option2": poll.option2,
        "option3": poll.option3,
        "duration_hours": poll.duration_hours,
        "created_at": iso(poll.created_at),
        "ends_at": iso(poll.ends_at),
        "finished": finished,
        "has_voted": voted,
        "results": None,
        "can_delete": user.role == ROLE_PRESIDENT and poll.creator_id == user.id,
    }
    if voted or finished:
        rows = s.query(Vote.option, func.count(Vote.id)).filter(Vote.poll_id == poll.id).group_by(Vote.option).all()
        out["results"] = tally(poll.options, dict(rows))
    return out


def active_polls(s: "Session", user: User) -> list[dict]:
    community = require_community(user)
    now = local_now()
    polls = (
        s.query(Poll)
        .filter(Poll.community_id == community.id, Poll.ends_at > now)
        .order_by(Poll.ends_at.asc())
        .all()
    )
    return [poll_payload(s, p, user, now) for p in polls]


def closed_polls(s: "Session", user: User) -> list[dict]:
    community = require_community(user)
    now = local_now()
    polls = (
        s.query(Poll)
        .filter(Poll.community_id == community.id, Poll.ends_at <= now)
        .order_by(Poll.ends_at.desc())
        .all()
    )
    return [poll_payload(s, p, user, now) for p in polls]


def delete_poll(s: "Session", user: User, poll_id: int) -> None:
    poll = s.get(Poll, poll_id)
    if not poll:
        raise NotFound("Poll not found.")
    if user.role != ROLE_PRESIDENT or poll.creator_id != user.id:
        raise PermissionDenied("Only the president who created the poll can delete it.")
    record_event(
        s,
        actor=user,
        action="poll.delete",
        entity_type="Poll",
        entity_id=str(poll.id),
        metadata={"title": poll.title},
    )
    s.delete(poll)
