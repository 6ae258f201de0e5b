from datetime import datetime

import pytest

from app.micomunity.db import session_scope
from app.micomunity.models import AuditEvent, Community, User


def _president_payload(**overrides):
    payload = {
        "dni": "12345678Z",
        "full_name": "Paula Presidenta",
        "floor": "1A",
        "email": "paula@example.com",
        "password": "secret1",
        "confirm_password": "secret1",
        "community_code": "SOL-01",
        "community_name": "Residencial Sol",
        "address": "Calle Mayor 1",
        "postal_code": "28001",
    }
    payload.update(overrides)
    return payload


def _resident_payload(**overrides):
    payload = {
        "dni": "87654321X",
        "full_name": "Ricardo Vecino",
        "floor": "3B",
        "email": "ricardo@example.com",
        "password": "secret1",
        "confirm_password": "secret1",
        "community_code": "SOL-01",
    }
    payload.update(overrides)
    return payload


def test_register_president_creates_community_and_logs_in(app, client):
    r = client.post("/api/auth/register/president", json=_president_payload())
    assert r.status_code == 201
    assert r.json["user"]["role"] == "PRESIDENT"
    assert r.json["user"]["community_code"] == "SOL-01"
    assert r.json["csrf_token"]

    with session_scope(app) as s:
        c = s.query(Community).filter(Community.community_code == "SOL-01").one()
        u = s.query(User).filter(User.email == "paula@example.com").one()
        assert c.president_id == u.id
        assert u.community_id == c.id
        assert u.password_hash != "secret1"

    r = client.get("/api/auth/me")
    assert r.status_code == 200
    assert r.json["user"]["email"] == "paula@example.com"


def test_register_president_rejects_taken_community_code(client):
    assert client.post("/api/auth/register/president", json=_president_payload()).status_code == 201
    r = client.post(
        "/api/auth/register/president",
        json=_president_payload(dni="11223344B", email="otra@example.com"),
    )
    assert r.status_code == 400
    assert r.json["error"] == "Community code is already in use."


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"dni": "1234"}, "dni"),
        ({"email": "not-an-email"}, "email"),
        ({"password": "123", "confirm_password": "123"}, "password"),
        ({"full_name": ""}, "full_name"),
    ],
)
def test_register_president_reports_invalid_account_fields(client, overrides, field):
    r = client.post("/api/auth/register/president", json=_president_payload(**overrides))
    assert r.status_code == 400
    assert field in r.json["details"]


def test_register_president_rejects_bad_postal_code(client):
    r = client.post("/api/auth/register/president", json=_president_payload(postal_code="280"))
    assert r.status_code == 400
    assert "postal_code" in r.json["details"]


def test_register_rejects_mismatched_passwords(client):
    r = client.post("/api/auth/register/president", json=_president_payload(confirm_password="other1"))
    assert r.status_code == 400
    assert r.json["error"] == "Passwords do not match."


def test_register_resident_joins_existing_community(app, client):
    client.post("/api/auth/register/president", json=_president_payload())
    other = app.test_client()
    r = other.post("/api/auth/register", json=_resident_payload())
    assert r.status_code == 201
    assert r.json["user"]["role"] == "RESIDENT"
    assert r.json["user"]["community_name"] == "Residencial Sol"


def test_created_timestamps_use_local_wall_clock(app, client):
    before = datetime.now()
    client.post("/api/auth/register/president", json=_president_payload())
    after = datetime.now()

    with session_scope(app) as s:
        user = s.query(User).filter_by(email="paula@example.com").one()
        community = s.query(Community).one()
        event = s.query(AuditEvent).filter_by(actor_user_id=user.id).first()
        for stamp in (user.created_at, community.created_at, event.created_at):
            assert before <= stamp <= after


def test_register_resident_with_unknown_code_fails(client):
    r = client.post("/api/auth/register", json=_resident_payload(community_code="NOPE"))
    assert r.status_code == 400
    assert r.json["error"] == "Community code is not valid."


def test_register_rejects_duplicate_email_and_dni(client, seed):
    r = client.post("/api/auth/register", json=_resident_payload(community_code="A-001", email="rita@a.test"))
    assert r.status_code == 400
    assert r.json["error"] == "Email is already registered."

    r = client.post("/api/auth/register", json=_resident_payload(community_code="A-001", dni="22222222B"))
    assert r.status_code == 400
    assert r.json["error"] == "DNI is already registered."


def test_login_logout_and_me(app, client, seed):
    r = client.post("/api/auth/login", json={"email": "RITA@a.test ", "password": "secret1"})
    assert r.status_code == 200
    assert r.json["user"]["name"] == "Rita Resident"
    assert r.json["user"]["community_code"] == "A-001"

    assert client.get("/api/auth/me").status_code == 200

    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    assert client.get("/api/auth/me").status_code == 401

    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id).all()]
        assert "auth.login" in actions
        assert "auth.logout" in actions


def test_login_with_bad_password_is_unauthorized_and_audited(app, client, seed):
    r = client.post("/api/auth/login", json={"email": "rita@a.test", "password": "wrong-pw"})
    assert r.status_code == 401
    assert r.json["error"] == "Invalid credentials."

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "auth.login_failed").one()
        assert ev.entity_id == "rita@a.test"


def test_login_is_rate_limited_after_repeated_failures(client, seed):
    for _ in range(5):
        r = client.post("/api/auth/login", json={"email": "rita@a.test", "password": "wrong-pw"})
        assert r.status_code == 401
    r = client.post("/api/auth/login", json={"email": "rita@a.test", "password": "secret1"})
    assert r.status_code == 429


def test_inactive_user_cannot_log_in(app, client, seed):
    with session_scope(app) as s:
        s.get(User, seed.ramon).is_active = False
    r = client.post("/api/auth/login", json={"email": "ramon@a.test", "password": "secret1"})
    assert r.status_code == 401
