from flask import Blueprint, current_app, g, request

from app.micomunity.constants import ROLE_PRESIDENT
from app.micomunity.db import db_session
from app.micomunity.errors import ValidationError
from app.micomunity.modules.reservations.models import CommonArea
from app.micomunity.modules.reservations.service import (
    area_calendar,
    area_reservations,
    available_slots,
    cancel_reservation,
    community_reservations,
    create_area,
    create_reservation,
    delete_area,
    list_areas,
    my_reservation_payload,
    my_reservations,
    reservation_history,
    reservation_payload,
)
from app.micomunity.rbac import require_permission
from app.micomunity.utils import iso, json_body, local_now, parse_date, parse_time

zones_bp = Blueprint("zones", __name__)
bp = Blueprint("reservations", __name__)


def _area_payload(area: CommonArea) -> dict:
    return {
        "id": area.id,
        "name": area.name,
        "created_at": iso(area.created_at),
        "can_delete": g.current_user.role == ROLE_PRESIDENT,
    }


def _required_date(field: str = "date"):
    day = parse_date(request.args.get(field), field)
    if day is None:
        raise ValidationError(f"{field} is required.")
    return day


@zones_bp.post("/")
@require_permission("zones.manage")
def post_zone():
    s = db_session()
    area = create_area(s, g.current_user, str(json_body().get("name") or ""))
    s.commit()
    return _area_payload(area), 201


@zones_bp.delete("/<zone_id>")
@require_permission("zones.manage")
def remove_zone(zone_id: str):
    s = db_session()
    delete_area(s, g.current_user, zone_id)
    s.commit()
    return {"ok": True}


@zones_bp.get("/")
@require_permission("zones.view")
def get_zones():
    return {"zones": [_area_payload(a) for a in list_areas(db_session(), g.current_user)]}


@bp.post("/")
@require_permission("reservations.create")
def post_reservation():
    s = db_session()
    data = json_body()
    r = create_reservation(
        s,
        g.current_user,
        area_id=str(data.get("zone_id") or ""),
        day=parse_date(data.get("date"), "date"),
        start=parse_time(data.get("start_time"), "start_time"),
        end=parse_time(data.get("end_time"), "end_time"),
        limit_per_zone_per_day=current_app.config["RESERVATION_LIMIT_PER_ZONE_PER_DAY"],
        limit_per_user=current_app.config["RESERVATION_LIMIT_PER_USER"],
    )
    s.commit()
    return reservation_payload(r, g.current_user), 201


@bp.delete("/<reservation_id>")
@require_permission("reservations.create")
def remove_reservation(reservation_id: str):
    s = db_session()
    cancel_reservation(s, g.current_user, reservation_id)
    s.commit()
    return {"ok": True, "message": "Reservation cancelled."}


@bp.get("/zone/<zone_id>")
@require_permission("reservations.view")
def get_zone_reservations(zone_id: str):
    now = local_now()
    items = area_reservations(db_session(), g.current_user, zone_id)
    return {"reservations": [reservation_payload(r, g.current_user, now) for r in items]}


@bp.get("/history")
@require_permission("reservations.history")
def get_history():
    now = local_now()
    items = reservation_history(
        db_session(),
        g.current_user,
        area_id=request.args.get("zone_id") or None,
        start_date=parse_date(request.args.get("start_date"), "start_date"),
        end_date=parse_date(request.args.get("end_date"), "end_date"),
    )
    return {"reservations": [reservation_payload(r, g.current_user, now) for r in items]}


@bp.get("/mine")
@require_permission("reservations.view")
def get_mine():
    now = local_now()
    return {"reservations": [my_reservation_payload(r, now) for r in my_reservations(db_session(), g.current_user)]}


@bp.get("/calendar/<zone_id>")
@require_permission("reservations.view")
def get_calendar(zone_id: str):
    return area_calendar(db_session(), g.current_user, zone_id, _required_date())


@bp.get("/community")
@require_permission("reservations.view")
def get_community_reservations():
    now = local_now()
    items = community_reservations(
        db_session(),
        g.current_user,
        parse_date(request.args.get("start_date"), "start_date"),
        parse_date(request.args.get("end_date"), "end_date"),
    )
    return {"reservations": [reservation_payload(r, g.current_user, now) for r in items]}


@bp.get("/available-slots/<zone_id>")
@require_permission("reservations.view")
def get_available_slots(zone_id: str):
    return available_slots(db_session(), g.current_user, zone_id, _required_date())
