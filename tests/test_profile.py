from app.micomunity.db import session_scope
from app.micomunity.models import AuditEvent


def _change(c, current, new, repeat=None):
    return c.put(
        "/api/users/password",
        json={
            "current_password": current,
            "new_password": new,
            "repeat_new_password": new if repeat is None else repeat,
        },
    )


def test_profile_returns_account_fields(seed, login):
    c = login("rita@a.test")
    r = c.get("/api/users/profile")
    assert r.status_code == 200
    assert r.json == {
        "email": "rita@a.test",
        "role": "RESIDENT",
        "dni": "22222222B",
        "full_name": "Rita Resident",
        "floor": "2B",
    }


def test_change_password_validations(seed, login):
    c = login("rita@a.test")

    r = _change(c, "secret1", "newpass1", repeat="newpass2")
    assert r.status_code == 400
    assert r.json["error"] == "New passwords do not match."

    r = _change(c, "secret1", "abc")
    assert r.status_code == 400

    r = _change(c, "wrong-current", "newpass1")
    assert r.status_code == 400
    assert r.json["error"] == "Current password is incorrect."

    r = _change(c, "secret1", "secret1")
    assert r.status_code == 400
    assert r.json["error"] == "New password must be different from the current one."


def test_change_password_then_login_with_new_one(app, seed, login):
    c = login("rita@a.test")
    r = _change(c, "secret1", "newpass1")
    assert r.status_code == 200

    fresh = app.test_client()
    assert fresh.post("/api/auth/login", json={"email": "rita@a.test", "password": "secret1"}).status_code == 401
    assert login("rita@a.test", "newpass1") is not None

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "user.password_change").count() == 1


def test_profile_requires_login(client):
    assert client.get("/api/users/profile").status_code == 401
