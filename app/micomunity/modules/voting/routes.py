from flask import Blueprint, g

from app.micomunity.db import db_session
from app.micomunity.modules.voting.service import (
    active_polls,
    cast_vote,
    closed_polls,
    create_poll,
    delete_poll,
    poll_payload,
)
from app.micomunity.rbac import require_permission
from app.micomunity.utils import json_body, local_now, parse_int

bp = Blueprint("votes", __name__)


@bp.post("/")
@require_permission("votes.create")
def post_poll():
    s = db_session()
    poll = create_poll(s, g.current_user, json_body())
    s.commit()
    return poll_payload(s, poll, g.current_user, local_now()), 201


@bp.post("/cast")
@require_permission("votes.cast")
def post_vote():
    s = db_session()
    data = json_body()
    vote = cast_vote(s, g.current_user, parse_int(data.get("poll_id"), "poll_id"), str(data.get("option") or ""))
    s.commit()
    return {"ok": True, "poll_id": vote.poll_id, "option": vote.option}


@bp.get("/active")
@require_permission("votes.view")
def get_active():
    return {"polls": active_polls(db_session(), g.current_user)}


@bp.get("/closed")
@require_permission("votes.view")
def get_closed():
    return {"polls": closed_polls(db_session(), g.current_user)}


@bp.delete("/<int:poll_id>")
@require_permission("votes.delete")
def remove_poll(poll_id: int):
    s = db_session()
    delete_poll(s, g.current_user, poll_id)
    s.commit()
    return {"ok": True}
