from flask import Blueprint, g

from app.micomunity.db import db_session
from app.micomunity.modules.community.service import (
    change_community,
    community_members,
    my_community,
    transfer_presidency,
)
from app.micomunity.rbac import require_permission
from app.micomunity.utils import json_body, parse_int

bp = Blueprint("community", __name__)


@bp.get("/mine")
@require_permission("community.view")
def get_my_community():
    return my_community(db_session(), g.current_user)


@bp.put("/change")
@require_permission("community.change")
def put_change_community():
    s = db_session()
    target = change_community(s, g.current_user, str(json_body().get("new_community_code") or ""))
    s.commit()
    return {"ok": True, "community_code": target.community_code, "community_name": target.name}


@bp.put("/transfer-presidency")
@require_permission("community.transfer")
def put_transfer_presidency():
    s = db_session()
    new_id = parse_int(json_body().get("new_president_id"), "new_president_id")
    new_president = transfer_presidency(s, g.current_user, new_id)
    s.commit()
    return {"ok": True, "president_id": new_president.id, "president_name": new_president.full_name}


@bp.get("/members")
@require_permission("community.members")
def get_members():
    return {"members": community_members(db_session(), g.current_user)}
