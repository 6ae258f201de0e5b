from datetime import date, datetime, time, timedelta

import pytest

from app.micomunity.db import session_scope
from app.micomunity.modules.reservations.models import Reservation
from app.micomunity.modules.reservations.service import (
    REASON_BOOKED,
    REASON_PAST_DATE,
    REASON_PAST_TIME,
    day_slots,
    free_start_hours,
    overlaps,
)

FUTURE = (date.today() + timedelta(days=3)).isoformat()


class TestSlotHelpers:
    def test_overlap_is_strict(self):
        assert overlaps(time(10), time(12), time(11), time(13))
        assert overlaps(time(10), time(12), time(9), time(15))
        assert not overlaps(time(10), time(12), time(12), time(14))
        assert not overlaps(time(10), time(12), time(8), time(10))

    def test_day_slots_blocks_and_reasons(self):
        now = datetime(2026, 5, 10, 13, 0)
        slots = day_slots(date(2026, 5, 10), [(time(16), time(18))], now)
        assert [s["start_time"] for s in slots] == ["08:00", "10:00", "12:00", "14:00", "16:00", "18:00", "20:00"]
        reasons = {s["start_time"]: s["reason"] for s in slots}
        assert reasons["08:00"] == REASON_PAST_TIME
        assert reasons["12:00"] == REASON_PAST_TIME
        assert reasons["14:00"] is None
        assert reasons["16:00"] == REASON_BOOKED
        assert [s["available"] for s in slots] == [False, False, False, True, False, True, True]

    def test_day_slots_past_date(self):
        now = datetime(2026, 5, 10, 9, 0)
        slots = day_slots(date(2026, 5, 9), [(time(8), time(10))], now)
        assert slots[0]["reason"] == REASON_BOOKED
        assert {s["reason"] for s in slots[1:]} == {REASON_PAST_DATE}

    def test_free_start_hours(self):
        assert free_start_hours([(time(10), time(14))]) == ["08:00", "14:00", "16:00", "18:00", "20:00"]


@pytest.fixture()
def zone_id(seed, login):
    return login("pres@a.test").post("/api/zones", json={"name": "Pool"}).json["id"]


def _book(c, zone_id, start="10:00", end="12:00", day=FUTURE):
    return c.post(
        "/api/reservations",
        json={"zone_id": zone_id, "date": day, "start_time": start, "end_time": end},
    )


def test_overlapping_reservation_is_rejected(login, zone_id):
    r = _book(login("rita@a.test"), zone_id)
    assert r.status_code == 201
    assert r.json["user_name"] == "Rita Resident"
    assert r.json["is_own"] is True
    assert r.json["can_cancel"] is True

    ramon = login("ramon@a.test")
    r = _book(ramon, zone_id, "11:00", "13:00")
    assert r.status_code == 400
    assert "already a reservation" in r.json["error"]
    assert _book(ramon, zone_id, "12:00", "14:00").status_code == 201


def test_per_zone_per_day_limit(login, zone_id):
    rita = login("rita@a.test")
    assert _book(rita, zone_id).status_code == 201
    r = _book(rita, zone_id, "14:00", "16:00")
    assert r.status_code == 400
    assert "limit" in r.json["error"]
    later = (date.today() + timedelta(days=4)).isoformat()
    assert _book(rita, zone_id, day=later).status_code == 201


def test_optional_per_user_limit(app, login, zone_id):
    app.config["RESERVATION_LIMIT_PER_USER"] = 1
    gym = login("pres@a.test").post("/api/zones", json={"name": "Gym"}).json["id"]
    rita = login("rita@a.test")
    assert _book(rita, zone_id).status_code == 201
    r = _book(rita, gym)
    assert r.status_code == 400
    assert "active reservations" in r.json["error"]


def test_date_and_time_validation(login, zone_id):
    rita = login("rita@a.test")
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    assert _book(rita, zone_id, day=yesterday).status_code == 400
    assert _book(rita, zone_id, "12:00", "10:00").status_code == 400
    assert _book(rita, zone_id, "10:00", "10:00").status_code == 400
    assert _book(rita, zone_id, day="10/05/2026").status_code == 400
    assert _book(rita, zone_id, start="ten").status_code == 400
    assert rita.post("/api/reservations", json={"zone_id": zone_id}).status_code == 400

    assert _book(rita, zone_id, "15:00", "16:00").status_code == 201
    assert _book(rita, zone_id, start="10:00+01:00").status_code == 400
    assert _book(rita, zone_id, end="12:00Z").status_code == 400


def test_zone_must_belong_to_the_community(login, zone_id):
    assert _book(login("bruno@b.test"), zone_id).status_code == 404
    assert _book(login("rita@a.test"), "missing").status_code == 404


def test_admin_cannot_reserve(login, zone_id):
    assert _book(login("admin@a.test"), zone_id).status_code == 403


def test_cancel_rules(login, zone_id):
    rita = login("rita@a.test")
    reservation_id = _book(rita, zone_id).json["id"]

    assert login("ramon@a.test").delete(f"/api/reservations/{reservation_id}").status_code == 404
    assert rita.delete(f"/api/reservations/{reservation_id}").status_code == 200
    r = rita.delete(f"/api/reservations/{reservation_id}")
    assert r.status_code == 400
    assert "already cancelled" in r.json["error"]

    # A cancelled slot is free again.
    assert _book(login("ramon@a.test"), zone_id).status_code == 201


def test_started_reservation_cannot_be_cancelled(app, login, zone_id):
    rita = login("rita@a.test")
    reservation_id = _book(rita, zone_id).json["id"]
    with session_scope(app) as s:
        s.get(Reservation, reservation_id).date = date.today() - timedelta(days=1)
    r = rita.delete(f"/api/reservations/{reservation_id}")
    assert r.status_code == 400
    assert "already started" in r.json["error"]


def test_other_residents_see_reserved_placeholder(login, zone_id):
    _book(login("rita@a.test"), zone_id)

    r = login("ramon@a.test").get(f"/api/reservations/zone/{zone_id}")
    assert r.status_code == 200
    item = r.json["reservations"][0]
    assert item["user_name"] == "Reserved"
    assert item["user_email"] == ""
    assert item["is_own"] is False
    assert item["can_cancel"] is False

    item = login("pres@a.test").get(f"/api/reservations/zone/{zone_id}").json["reservations"][0]
    assert item["user_name"] == "Rita Resident"
    assert item["user_email"] == "rita@a.test"


def test_my_reservations(login, zone_id):
    rita = login("rita@a.test")
    _book(rita, zone_id)
    r = rita.get("/api/reservations/mine")
    assert r.status_code == 200
    (item,) = r.json["reservations"]
    assert item["zone_name"] == "Pool"
    assert item["has_started"] is False
    assert item["has_ended"] is False
    assert item["can_cancel"] is True
    assert item["hours_until_start"] > 24

    assert login("ramon@a.test").get("/api/reservations/mine").json["reservations"] == []


def test_history_is_president_only(login, zone_id):
    _book(login("rita@a.test"), zone_id)
    p = login("pres@a.test")
    r = p.get(f"/api/reservations/history?zone_id={zone_id}")
    assert r.status_code == 200
    assert len(r.json["reservations"]) == 1

    r = p.get(f"/api/reservations/history?start_date={date.today().isoformat()}&end_date={date.today().isoformat()}")
    assert r.json["reservations"] == []

    assert login("rita@a.test").get("/api/reservations/history").status_code == 403


def test_calendar_and_available_slots(login, zone_id):
    rita = login("rita@a.test")
    _book(rita, zone_id)

    r = rita.get(f"/api/reservations/calendar/{zone_id}?date={FUTURE}")
    assert r.status_code == 200
    assert r.json["zone_name"] == "Pool"
    assert "10:00" not in r.json["available_hours"]
    assert "08:00" in r.json["available_hours"]
    assert len(r.json["reservations"]) == 1

    r = rita.get(f"/api/reservations/available-slots/{zone_id}?date={FUTURE}")
    assert r.status_code == 200
    slots = {s["start_time"]: s for s in r.json["slots"]}
    assert len(slots) == 7
    assert slots["10:00"]["available"] is False
    assert slots["10:00"]["reason"] == "Already booked"
    assert slots["12:00"]["available"] is True

    past = (date.today() - timedelta(days=1)).isoformat()
    r = rita.get(f"/api/reservations/available-slots/{zone_id}?date={past}")
    assert {s["reason"] for s in r.json["slots"]} == {"Past date"}

    assert rita.get(f"/api/reservations/calendar/{zone_id}").status_code == 400
    assert rita.get(f"/api/reservations/available-slots/{zone_id}").status_code == 400


def test_community_reservations_range(login, zone_id):
    rita = login("rita@a.test")
    _book(rita, zone_id)

    r = rita.get("/api/reservations/community")
    assert r.status_code == 200
    assert len(r.json["reservations"]) == 1

    far = (date.today() + timedelta(days=30)).isoformat()
    assert rita.get(f"/api/reservations/community?start_date={far}").json["reservations"] == []

    r = rita.get(f"/api/reservations/community?start_date={FUTURE}&end_date={date.today().isoformat()}")
    assert r.status_code == 400
