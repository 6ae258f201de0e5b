from datetime import date, timedelta

from app.micomunity.db import session_scope
from app.micomunity.modules.reservations.models import CommonArea


def _zone(c, name):
    return c.post("/api/zones", json={"name": name})


def test_president_manages_zones(app, seed, login):
    p = login("pres@a.test")
    r = _zone(p, "Pool")
    assert r.status_code == 201
    assert r.json["name"] == "Pool"
    assert len(r.json["id"]) == 36
    _zone(p, "Gym")

    r = p.get("/api/zones")
    assert [z["name"] for z in r.json["zones"]] == ["Gym", "Pool"]
    assert all(z["can_delete"] for z in r.json["zones"])

    r = login("rita@a.test").get("/api/zones")
    assert [z["name"] for z in r.json["zones"]] == ["Gym", "Pool"]
    assert not any(z["can_delete"] for z in r.json["zones"])

    assert login("bruno@b.test").get("/api/zones").json["zones"] == []


def test_zone_validation(seed, login):
    p = login("pres@a.test")
    assert _zone(p, "Pool").status_code == 201
    r = _zone(p, "Pool")
    assert r.status_code == 400
    assert "already exists" in r.json["error"]
    assert _zone(p, "  ").status_code == 400
    assert _zone(p, "x" * 101).status_code == 400
    # Same name in another community is fine.
    assert _zone(login("pres@b.test"), "Pool").status_code == 201


def test_only_president_creates_zones(seed, login):
    assert _zone(login("rita@a.test"), "Pool").status_code == 403
    assert _zone(login("admin@a.test"), "Pool").status_code == 403


def test_zone_with_upcoming_reservation_cannot_be_deleted(app, seed, login):
    p = login("pres@a.test")
    zone_id = _zone(p, "Pool").json["id"]
    rita = login("rita@a.test")
    day = (date.today() + timedelta(days=2)).isoformat()
    res = rita.post(
        "/api/reservations",
        json={"zone_id": zone_id, "date": day, "start_time": "10:00", "end_time": "12:00"},
    )
    assert res.status_code == 201

    r = p.delete(f"/api/zones/{zone_id}")
    assert r.status_code == 400
    assert r.json["details"] == {"active_reservations": 1}

    assert rita.delete(f"/api/reservations/{res.json['id']}").status_code == 200
    assert p.delete(f"/api/zones/{zone_id}").status_code == 200
    with session_scope(app) as s:
        assert s.get(CommonArea, zone_id) is None


def test_zone_of_another_community_is_not_found(seed, login):
    zone_id = _zone(login("pres@a.test"), "Pool").json["id"]
    assert login("pres@b.test").delete(f"/api/zones/{zone_id}").status_code == 404
    assert login("pres@a.test").delete("/api/zones/not-a-zone").status_code == 404
