from flask import Blueprint, current_app, g, request, url_for

from app.micomunity.db import db_session
from app.micomunity.errors import NotFound
from app.micomunity.modules.incidents.models import Incident
from app.micomunity.modules.incidents.service import (
    can_view_file,
    community_incidents_query,
    create_incident,
    delete_incident,
    update_status,
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
    send_stored_file,
    store_upload,
)

bp = Blueprint("incidents", __name__)


def _incident_payload(incident: Incident) -> dict:
    return {
        "id": incident.id,
        "title": incident.title,
        "description": incident.description,
        "location": incident.location,
        "status": incident.status,
        "created_at": iso(incident.created_at),
        "author_id": incident.creator_id,
        "author_name": incident.creator.full_name if incident.creator else None,
        "image_url": url_for("incidents.download", key=incident.image_key) if incident.image_key else None,
    }


@bp.post("/")
@require_permission("incidents.create")
def post_incident():
    s = db_session()
    data = form_or_json()
    image = request.files.get("image")
    image_key = None
    if has_upload(image):
        image_key = store_upload(
            image,
            "incidents",
            allowed_extensions=current_app.config["IMAGE_ALLOWED_EXTENSIONS"],
        ).storage_key
    try:
        incident = create_incident(
            s,
            g.current_user,
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            location=str(data.get("location") or ""),
            image_key=image_key,
        )
    except Exception:
        delete_stored_file(image_key)
        raise
    s.commit()
    return _incident_payload(incident), 201


@bp.get("/community")
@require_permission("incidents.view")
def list_community_incidents():
    s = db_session()
    page, size = page_args()
    q = community_incidents_query(
        s,
        g.current_user,
        request.args.get("sort_field", "created_at"),
        request.args.get("sort_direction", "desc"),
    )
    return paginate(q, page, size, _incident_payload)


@bp.put("/<int:incident_id>/status")
@require_permission("incidents.update_status")
def put_incident_status(incident_id: int):
    s = db_session()
    incident = update_status(s, g.current_user, incident_id, str(json_body().get("status") or ""))
    s.commit()
    return _incident_payload(incident)


@bp.delete("/<int:incident_id>")
@require_permission("incidents.delete")
def remove_incident(incident_id: int):
    s = db_session()
    image_key = delete_incident(s, g.current_user, incident_id)
    s.commit()
    delete_stored_file(image_key)
    return {"ok": True}


@bp.get("/download/<path:key>")
@require_permission("incidents.view")
def download(key: str):
    if not can_view_file(db_session(), g.current_user, key):
        raise NotFound("File not found.")
    return send_stored_file(key)
