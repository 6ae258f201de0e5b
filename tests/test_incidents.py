import io

import pytest

from app.micomunity.db import session_scope
from app.micomunity.errors import ValidationError
from app.micomunity.models import AuditEvent
from app.micomunity.modules.incidents.models import Incident
from app.micomunity.modules.incidents.service import check_transition


def _create(c, title="Broken light", **extra):
    data = {"title": title, "description": "Stairwell light is out", "location": "Portal 2"}
    data.update(extra)
    return c.post("/api/incidents", json=data)


class TestCheckTransition:
    def test_forward_path_is_allowed(self):
        check_transition("OPEN", "IN_PROGRESS")
        check_transition("IN_PROGRESS", "RESOLVED")
        check_transition("RESOLVED", "CANCELLED")

    def test_skipping_a_step_is_rejected(self):
        with pytest.raises(ValidationError):
            check_transition("OPEN", "RESOLVED")

    def test_cancelled_is_final(self):
        with pytest.raises(ValidationError, match="cancelled"):
            check_transition("CANCELLED", "OPEN")

    def test_unknown_status(self):
        with pytest.raises(ValidationError, match="Unknown status"):
            check_transition("OPEN", "DONE")


def test_resident_reports_incident_with_image(app, seed, login):
    c = login("rita@a.test")
    r = c.post(
        "/api/incidents",
        data={
            "title": "Leak",
            "description": "Water in the garage",
            "location": "Garage",
            "image": (io.BytesIO(b"\x89PNG fake"), "leak.png"),
        },
        content_type="multipart/form-data",
    )
    assert r.status_code == 201
    body = r.json
    assert body["status"] == "OPEN"
    assert body["author_name"] == "Rita Resident"
    assert body["image_url"].startswith("/api/incidents/download/incidents/")

    r = login("ramon@a.test").get(body["image_url"])
    assert r.status_code == 200
    assert r.get_data() == b"\x89PNG fake"
    r.close()

    assert login("bruno@b.test").get(body["image_url"]).status_code == 404

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "incident.create").count() == 1


def test_incident_image_type_is_checked(seed, login):
    r = login("rita@a.test").post(
        "/api/incidents",
        data={"title": "Leak", "description": "x", "image": (io.BytesIO(b"MZ"), "virus.exe")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 400


def test_incident_field_validation(seed, login):
    c = login("rita@a.test")
    r = _create(c, title="x" * 101)
    assert r.status_code == 400
    assert "title" in r.json["details"]

    r = c.post("/api/incidents", json={"title": "No description"})
    assert r.status_code == 400
    assert "description" in r.json["details"]


def test_community_listing_is_paginated_and_scoped(seed, login):
    c = login("rita@a.test")
    for title in ("Alpha", "Bravo", "Charlie"):
        assert _create(c, title=title).status_code == 201
    assert _create(login("bruno@b.test"), title="Elsewhere").status_code == 201

    r = c.get("/api/incidents/community?size=2&sort_field=title&sort_direction=asc")
    assert r.status_code == 200
    assert r.json["total_elements"] == 3
    assert r.json["total_pages"] == 2
    assert [i["title"] for i in r.json["content"]] == ["Alpha", "Bravo"]
    assert r.json["first"] is True
    assert r.json["last"] is False

    r = c.get("/api/incidents/community?size=2&page=1&sort_field=title&sort_direction=asc")
    assert [i["title"] for i in r.json["content"]] == ["Charlie"]
    assert r.json["last"] is True

    assert c.get("/api/incidents/community?sort_field=password").status_code == 400


def test_status_workflow(seed, login):
    incident_id = _create(login("rita@a.test")).json["id"]
    p = login("pres@a.test")
    url = f"/api/incidents/{incident_id}/status"

    assert p.put(url, json={"status": "RESOLVED"}).status_code == 400
    assert p.put(url, json={"status": "in_progress"}).json["status"] == "IN_PROGRESS"
    assert p.put(url, json={"status": "RESOLVED"}).json["status"] == "RESOLVED"
    assert login("admin@a.test").put(url, json={"status": "CANCELLED"}).json["status"] == "CANCELLED"

    r = p.put(url, json={"status": "OPEN"})
    assert r.status_code == 400
    assert "cancelled" in r.json["error"]


def test_status_update_permissions(seed, login):
    incident_id = _create(login("rita@a.test")).json["id"]
    url = f"/api/incidents/{incident_id}/status"
    assert login("rita@a.test").put(url, json={"status": "IN_PROGRESS"}).status_code == 403
    assert login("pres@b.test").put(url, json={"status": "IN_PROGRESS"}).status_code == 403
    assert login("pres@a.test").put("/api/incidents/9999/status", json={"status": "IN_PROGRESS"}).status_code == 404


def test_delete_rules_and_image_cleanup(app, tmp_path, seed, login):
    rita = login("rita@a.test")
    r = rita.post(
        "/api/incidents",
        data={"title": "Leak", "description": "Water", "image": (io.BytesIO(b"img"), "leak.jpg")},
        content_type="multipart/form-data",
    )
    incident_id = r.json["id"]
    with session_scope(app) as s:
        key = s.get(Incident, incident_id).image_key
    stored = tmp_path / "uploads" / key
    assert stored.is_file()

    assert login("ramon@a.test").delete(f"/api/incidents/{incident_id}").status_code == 403
    assert login("pres@b.test").delete(f"/api/incidents/{incident_id}").status_code == 403

    r = rita.delete(f"/api/incidents/{incident_id}")
    assert r.status_code == 200
    assert r.json == {"ok": True}
    assert not stored.exists()
    assert rita.delete(f"/api/incidents/{incident_id}").status_code == 404


def test_president_can_delete_any_incident_of_the_community(seed, login):
    incident_id = _create(login("rita@a.test")).json["id"]
    assert login("pres@a.test").delete(f"/api/incidents/{incident_id}").status_code == 200
