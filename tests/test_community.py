from app.micomunity.db import session_scope
from app.micomunity.models import Community, User


def test_my_community_lists_president_and_residents_by_name(seed, login):
    c = login("rita@a.test")
    r = c.get("/api/community/mine")
    assert r.status_code == 200
    assert r.json["community_code"] == "A-001"
    assert r.json["president_name"] == "Pat President"
    names = [m["full_name"] for m in r.json["residents"]]
    assert names == sorted(names)
    assert "Rita Resident" in names
    assert "Bruno Resident" not in names


def test_my_community_without_president(app, seed, login):
    with session_scope(app) as s:
        s.get(Community, seed.community_a).president = None
    r = login("rita@a.test").get("/api/community/mine")
    assert r.json["president_name"] == "Not assigned"


def test_resident_changes_community(app, seed, login):
    c = login("rita@a.test")
    r = c.put("/api/community/change", json={"new_community_code": "B-001"})
    assert r.status_code == 200
    assert r.json == {"ok": True, "community_code": "B-001", "community_name": "Edificio Luna"}

    with session_scope(app) as s:
        assert s.get(User, seed.rita).community_id == seed.community_b


def test_change_community_errors(seed, login):
    c = login("rita@a.test")
    assert c.put("/api/community/change", json={"new_community_code": ""}).status_code == 400
    assert c.put("/api/community/change", json={"new_community_code": "ZZZ"}).status_code == 404
    r = c.put("/api/community/change", json={"new_community_code": "A-001"})
    assert r.status_code == 400
    assert r.json["error"] == "You already belong to this community."

    p = login("pres@a.test")
    r = p.put("/api/community/change", json={"new_community_code": "B-001"})
    assert r.status_code == 400


def test_transfer_presidency_swaps_roles(app, seed, login):
    p = login("pres@a.test")
    r = p.put("/api/community/transfer-presidency", json={"new_president_id": seed.rita})
    assert r.status_code == 200
    assert r.json["president_name"] == "Rita Resident"

    with session_scope(app) as s:
        assert s.get(User, seed.rita).role == "PRESIDENT"
        assert s.get(User, seed.pat).role == "RESIDENT"
        assert s.get(Community, seed.community_a).president_id == seed.rita

    # Pat is now a resident and lost the transfer permission.
    r = p.put("/api/community/transfer-presidency", json={"new_president_id": seed.ramon})
    assert r.status_code == 403


def test_transfer_presidency_rejections(seed, login):
    p = login("pres@a.test")
    url = "/api/community/transfer-presidency"
    assert p.put(url, json={}).status_code == 400
    assert p.put(url, json={"new_president_id": 99999}).status_code == 404
    assert p.put(url, json={"new_president_id": seed.bruno}).status_code == 400
    assert p.put(url, json={"new_president_id": seed.pat}).status_code == 400
    assert p.put(url, json={"new_president_id": seed.admin}).status_code == 400
    assert p.put(url, json={"new_president_id": "abc"}).status_code == 400


def test_resident_cannot_transfer_presidency(seed, login):
    r = login("rita@a.test").put("/api/community/transfer-presidency", json={"new_president_id": seed.ramon})
    assert r.status_code == 403


def test_members_visible_to_president_and_admin_only(seed, login):
    r = login("pres@a.test").get("/api/community/members")
    assert r.status_code == 200
    emails = {m["email"] for m in r.json["members"]}
    assert {"rita@a.test", "ramon@a.test", "pres@a.test"} <= emails
    assert "bruno@b.test" not in emails

    assert login("admin@a.test").get("/api/community/members").status_code == 200
    assert login("rita@a.test").get("/api/community/members").status_code == 403
