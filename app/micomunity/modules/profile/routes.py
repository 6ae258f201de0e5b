from flask import Blueprint, g

from app.micomunity.db import db_session
from app.micomunity.modules.profile.service import change_password, profile_payload
from app.micomunity.rbac import require_permission
from app.micomunity.utils import json_body

bp = Blueprint("profile", __name__)


@bp.get("/profile")
@require_permission("profile.view")
def get_profile():
    return profile_payload(g.current_user)


@bp.put("/password")
@require_permission("profile.edit")
def put_password():
    s = db_session()
    change_password(s, g.current_user, json_body())
    s.commit()
    return {"ok": True, "message": "Password changed."}
