from flask import Blueprint, current_app, g, request, url_for

from app.micomunity.db import db_session
from app.micomunity.errors import NotFound
from app.micomunity.modules.complaints.models import Complaint
from app.micomunity.modules.complaints.service import (
    author_display_name,
    can_view_image,
    community_complaints_query,
    create_complaint,
    delete_complaint,
    my_complaints_query,
    reply_complaint,
)
from app.micomunity.rbac import require_permission
from app.micomunity.utils import (
    delete_stored_file,
    form_or_json,
    has_upload,
    iso,
    json_body,
    page_args,
    paginate,
    parse_bool,
    send_stored_file,
    store_upload,
)

bp = Blueprint("complaints", __name__)


def _complaint_payload(c: Complaint) -> dict:
    return {
        "id": c.id,
        "content": c.content,
        "anonymous": c.anonymous,
        "author_name": author_display_name(c),
        "created_at": iso(c.created_at),
        "response": c.response,
        "response_date": iso(c.response_date),
        "image_url": url_for("complaints.image", key=c.image_key) if c.image_key else None,
    }


@bp.post("/")
@require_permission("complaints.create")
def post_complaint():
    s = db_session()
    data = form_or_json()
    image = request.files.get("image")
    image_key = None
    if has_upload(image):
        image_key = store_upload(
            image,
            "complaints",
            allowed_extensions=current_app.config["IMAGE_ALLOWED_EXTENSIONS"],
        ).storage_key
    try:
        complaint = create_complaint(
            s,
            g.current_user,
            content=str(data.get("content") or ""),
            anonymous=parse_bool(data.get("anonymous")),
            image_key=image_key,
        )
    except Exception:
        delete_stored_file(image_key)
        raise
    s.commit()
    return _complaint_payload(complaint), 201


@bp.get("/my")
@require_permission("complaints.view")
def list_my_complaints():
    page, size = page_args()
    return paginate(my_complaints_query(db_session(), g.current_user), page, size, _complaint_payload)


@bp.get("/community")
@require_permission("complaints.view")
def list_community_complaints():
    page, size = page_args()
    return paginate(community_complaints_query(db_session(), g.current_user), page, size, _complaint_payload)


@bp.put("/<int:complaint_id>/reply")
@require_permission("complaints.reply")
def put_reply(complaint_id: int):
    s = db_session()
    complaint = reply_complaint(s, g.current_user, complaint_id, str(json_body().get("response") or ""))
    s.commit()
    return _complaint_payload(complaint)


@bp.delete("/<int:complaint_id>")
@require_permission("complaints.delete")
def remove_complaint(complaint_id: int):
    s = db_session()
    image_key = delete_complaint(s, g.current_user, complaint_id)
    s.commit()
    delete_stored_file(image_key)
    return {"ok": True}


@bp.get("/images/<path:key>")
@require_permission("complaints.view")
def image(key: str):
    if not can_view_image(db_session(), g.current_user, key):
        raise NotFound("File not found.")
    return send_stored_file(key)
