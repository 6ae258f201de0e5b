"""
Common areas (zones) and their time-slot reservations.

Rules enforced here:
- A reservation may not overlap an ACTIVE reservation of the same area and day
  (``start < other.end and end > other.start``); adjacent slots are fine.
- Per-user quota per area per day, and an optional quota of upcoming active
  reservations per user (0 disables it).
- Only the owner cancels, and only an ACTIVE reservation that has not started.
- Other residents only see "Reserved" for someone else's booking; the
  president and the owner see name and email.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Iterable

from sqlalchemy.exc import IntegrityError

from app.micomunity.audit import record_event
from app.micomunity.constants import RESERVED_NAME, ROLE_PRESIDENT, ROLE_RESIDENT
from app.micomunity.errors import NotFound, PermissionDenied, ValidationError
from app.micomunity.models import User
from app.micomunity.modules.community.service import require_community
from app.micomunity.modules.reservations.models import CommonArea, Reservation
from app.micomunity.utils import iso, local_now

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "ACTIVE"
STATUS_CANCELLED = "CANCELLED"

# Bookable day: 08:00-22:00 in 2-hour blocks.
SLOT_BLOCKS: tuple[tuple[time, time], ...] = tuple(
    (time(h, 0), time(h + 2, 0)) for h in range(8, 22, 2)
)

REASON_BOOKED = "Already booked"
REASON_PAST_TIME = "Past time"
REASON_PAST_DATE = "Past date"

AREA_NAME_MAX = 100
DEFAULT_RANGE_DAYS = 7


# --- pure helpers ---------------------------------------------------------------------------

def overlaps(start: time, end: time, other_start: time, other_end: time) -> bool:
    return start < other_end and end > other_start


def day_slots(day: date, booked: Iterable[tuple[time, time]], now: datetime) -> list[dict]:
    """Availability of every block of ``day`` given the booked (start, end) intervals."""
    booked = list(booked)
    out = []
    for start, end in SLOT_BLOCKS:
        available = True
        reason = None
        if any(overlaps(start, end, b_start, b_end) for b_start, b_end in booked):
            available = False
            reason = REASON_BOOKED
        elif day == now.date() and start < now.time():
            available = False
            reason = REASON_PAST_TIME
        elif day < now.date():
            available = False
            reason = REASON_PAST_DATE
        out.append({"start_time": iso(start), "end_time": iso(end), "available": available, "reason": reason})
    return out


def free_start_hours(booked: Iterable[tuple[time, time]]) -> list[str]:
    booked = list(booked)
    return [
        iso(start)
        for start, end in SLOT_BLOCKS
        if not any(overlaps(start, end, b_start, b_end) for b_start, b_end in booked)
    ]


def _starts_at(r: Reservation) -> datetime:
    return datetime.combine(r.date, r.start_time)


def _ends_at(r: Reservation) -> datetime:
    return datetime.combine(r.date, r.end_time)


def can_cancel(user: User, r: Reservation, now: datetime) -> bool:
    return (
        user.role in (ROLE_RESIDENT, ROLE_PRESIDENT)
        and r.user_id == user.id
        and r.status == STATUS_ACTIVE
        and not _starts_at(r) < now
    )


def reservation_payload(r: Reservation, viewer: User, now: datetime | None = None) -> dict:
    now = now or local_now()
    full = viewer.role == ROLE_PRESIDENT or viewer.id == r.user_id
    return {
        "id": r.id,
        "zone_id": r.area_id,
        "zone_name": r.area.name if r.area else None,
        "user_id": r.user_id,
        "user_name": r.user.full_name if full and r.user else RESERVED_NAME,
        "user_email": r.user.email if full and r.user else "",
        "date": iso(r.date),
        "start_time": iso(r.start_time),
        "end_time": iso(r.end_time),
        "status": r.status,
        "created_at": iso(r.created_at),
        "cancelled_at": iso(r.cancelled_at),
        "is_own": viewer.id == r.user_id,
        "can_cancel": can_cancel(viewer, r, now),
    }


def my_reservation_payload(r: Reservation, now: datetime | None = None) -> dict:
    now = now or local_now()
    starts = _starts_at(r)
    ends = _ends_at(r)
    hours_until = int((starts - now).total_seconds() // 3600) if starts > now else 0
    return {
        "id": r.id,
        "zone_id": r.area_id,
        "zone_name": r.area.name if r.area else None,
        "date": iso(r.date),
        "start_time": iso(r.start_time),
        "end_time": iso(r.end_time),
        "status": r.status,
        "created_at": iso(r.created_at),
        "cancelled_at": iso(r.cancelled_at),
        "has_started": starts < now,
        "has_ended": ends < now,
        "can_cancel": r.status == STATUS_ACTIVE and starts > now,
        "hours_until_start": hours_until,
    }


# --- zones ----------------------------------------------------------------------------------

def get_area(s: "Session", user: User, area_id: str) -> CommonArea:
    area = s.get(CommonArea, area_id)
    if not area or user.community_id is None or area.community_id != user.community_id:
        raise NotFound("Common area not found or it does not belong to your community.")
    return area


def create_area(s: "Session", user: User, name: str) -> CommonArea:
    if user.role != ROLE_PRESIDENT:
        raise PermissionDenied("Only the president can create common areas.")
    community = require_community(user)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required.")
    if len(name) > AREA_NAME_MAX:
        raise ValidationError(f"Name must be at most {AREA_NAME_MAX} characters.")
    exists = (
        s.query(CommonArea.id)
        .filter(CommonArea.community_id == community.id, CommonArea.name == name)
        .first()
    )
    if exists:
        raise ValidationError("A common area with that name already exists in the community.")

    area = CommonArea(name=name, community_id=community.id, created_at=local_now())
    s.add(area)
    try:
        s.flush()
    except IntegrityError as e:
        raise ValidationError("A common area with that name already exists in the community.") from e
    record_event(
        s,
        actor=user,
        action="zone.create",
        entity_type="CommonArea",
        entity_id=area.id,
        metadata={"name": name},
    )
    return area


def delete_area(s: "Session", user: User, area_id: str) -> None:
    if user.role != ROLE_PRESIDENT:
        raise PermissionDenied("Only the president can delete common areas.")
    area = get_area(s, user, area_id)
    upcoming = (
        s.query(Reservation)
        .filter(
            Reservation.area_id == area.id,
            Reservation.status == STATUS_ACTIVE,
            Reservation.date >= local_now().date(),
        )
        .count()
    )
    if upcoming:
        raise ValidationError(
            "The common area cannot be deleted because it has upcoming active reservations.",
            details={"active_reservations": upcoming},
        )
    record_event(
        s,
        actor=user,
        action="zone.delete",
        entity_type="CommonArea",
        entity_id=area.id,
        metadata={"name": area.name},
    )
    s.delete(area)


def list_areas(s: "Session", user: User) -> list[CommonArea]:
    community = require_community(user)
    return (
        s.query(CommonArea)
        .filter(CommonArea.community_id == community.id)
        .order_by(CommonArea.name.asc())
        .all()
    )


# --- reservations ---------------------------------------------------------------------------

def _active_on(s: "Session", area_id: str, day: date) -> list[Reservation]:
    return (
        s.query(Reservation)
        .filter(
            Reservation.area_id == area_id,
            Reservation.date == day,
            Reservation.status == STATUS_ACTIVE,
        )
        .order_by(Reservation.start_time.asc())
        .all()
    )


def _validate_when(day: date | None, start: time | None, end: time | None, now: datetime) -> None:
    if day is None or start is None or end is None:
        raise ValidationError("date, start_time and end_time are required.")
    if day < now.date():
        raise ValidationError("Reservations cannot be made for past dates.")
    if day == now.date() and start < now.time():
        raise ValidationError("Reservations cannot be made for past times.")
    if not end > start:
        raise ValidationError("End time must be after start time.")


def create_reservation(
    s: "Session",
    user: User,
    *,
    area_id: str,
    day: date | None,
    start: time | None,
    end: time | None,
    limit_per_zone_per_day: int,
    limit_per_user: int = 0,
) -> Reservation:
    if user.role not in (ROLE_RESIDENT, ROLE_PRESIDENT):
        raise PermissionDenied("Only residents and the president can make reservations.")
    area = get_area(s, user, area_id)
    now = local_now()
    _validate_when(day, start, end, now)

    if any(overlaps(start, end, r.start_time, r.end_time) for r in _active_on(s, area.id, day)):
        raise ValidationError("There is already a reservation for this common area at that time.")

    same_day = (
        s.query(Reservation)
        .filter(
            Reservation.user_id == user.id,
            Reservation.area_id == area.id,
            Reservation.date == day,
            Reservation.status == STATUS_ACTIVE,
        )
        .count()
    )
    if same_day >= limit_per_zone_per_day:
        raise ValidationError(
            f"You have reached the reservation limit for this common area on this date ({limit_per_zone_per_day})."
        )

    if limit_per_user > 0:
        upcoming = (
            s.query(Reservation)
            .filter(
                Reservation.user_id == user.id,
                Reservation.status == STATUS_ACTIVE,
                Reservation.date >= now.date(),
            )
            .count()
        )
        if upcoming >= limit_per_user:
            raise ValidationError(f"You have reached the limit of active reservations ({limit_per_user}).")

    r = Reservation(
        area_id=area.id,
        user_id=user.id,
        date=day,
        start_time=start,
        end_time=end,
        status=STATUS_ACTIVE,
        created_at=now,
    )
    s.add(r)
    s.flush()
    record_event(
        s,
        actor=user,
        action="reservation.create",
        entity_type="Reservation",
        entity_id=r.id,
        metadata={"zone": area.name, "date": day, "start": iso(start), "end": iso(end)},
    )
    logger.info("Reservation %s created for %s on %s", r.id, area.name, day)
    return r


def cancel_reservation(s: "Session", user: User, reservation_id: str) -> Reservation:
    r = s.get(Reservation, reservation_id)
    if not r or r.user_id != user.id:
        raise NotFound("Reservation not found or it does not belong to you.")
    now = local_now()
    if _starts_at(r) < now:
        raise ValidationError("A reservation that has already started cannot be cancelled.")
    if r.status != STATUS_ACTIVE:
        raise ValidationError("The reservation is already cancelled.")

    r.status = STATUS_CANCELLED
    r.cancelled_at = now
    record_event(
        s,
        actor=user,
        action="reservation.cancel",
        entity_type="Reservation",
        entity_id=r.id,
    )
    logger.info("Reservation %s cancelled by %s", r.id, user.email)
    return r


def area_reservations(s: "Session", user: User, area_id: str) -> list[Reservation]:
    area = get_area(s, user, area_id)
    return (
        s.query(Reservation)
        .filter(Reservation.area_id == area.id, Reservation.status == STATUS_ACTIVE)
        .order_by(Reservation.date.asc(), Reservation.start_time.asc())
        .all()
    )


def reservation_history(
    s: "Session",
    user: User,
    *,
    area_id: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Reservation]:
    if user.role != ROLE_PRESIDENT:
        raise PermissionDenied("Only the president can view the reservation history.")
    community = require_community(user)
    q = (
        s.query(Reservation)
        .join(CommonArea, Reservation.area_id == CommonArea.id)
        .filter(CommonArea.community_id == community.id)
    )
    if area_id:
        q = q.filter(Reservation.area_id == area_id)
    if start_date:
        q = q.filter(Reservation.date >= start_date)
    if end_date:
        q = q.filter(Reservation.date <= end_date)
    return q.order_by(Reservation.date.desc(), Reservation.start_time.desc()).all()


def my_reservations(s: "Session", user: User) -> list[Reservation]:
    return (
        s.query(Reservation)
        .filter(Reservation.user_id == user.id)
        .order_by(Reservation.date.desc(), Reservation.start_time.desc())
        .all()
    )


def area_calendar(s: "Session", user: User, area_id: str, day: date) -> dict:
    area = get_area(s, user, area_id)
    booked = _active_on(s, area.id, day)
    now = local_now()
    return {
        "zone_id": area.id,
        "zone_name": area.name,
        "date": iso(day),
        "reservations": [reservation_payload(r, user, now) for r in booked],
        "available_hours": free_start_hours((r.start_time, r.end_time) for r in booked),
    }


def community_reservations(
    s: "Session",
    user: User,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Reservation]:
    community = require_community(user)
    if start_date is None:
        start_date = local_now().date()
    if end_date is None:
        end_date = start_date + timedelta(days=DEFAULT_RANGE_DAYS)
    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date.")
    return (
        s.query(Reservation)
        .join(CommonArea, Reservation.area_id == CommonArea.id)
        .filter(
            CommonArea.community_id == community.id,
            Reservation.status == STATUS_ACTIVE,
            Reservation.date >= start_date,
            Reservation.date <= end_date,
        )
        .order_by(Reservation.date.asc(), Reservation.start_time.asc())
        .all()
    )


def available_slots(s: "Session", user: User, area_id: str, day: date) -> dict:
    area = get_area(s, user, area_id)
    booked = _active_on(s, area.id, day)
    return {
        "zone_id": area.id,
        "zone_name": area.name,
        "date": iso(day),
        "slots": day_slots(day, ((r.start_time, r.end_time) for r in booked), local_now()),
    }
