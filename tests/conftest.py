from types import SimpleNamespace

import pytest
from werkzeug.security import generate_password_hash

from app.micomunity import auth as auth_module
from app.micomunity import create_app
from app.micomunity.db import session_scope
from app.micomunity.models import Base, Community, User

PASSWORD = "secret1"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    for k in (
        "S3_ENDPOINT",
        "S3_REGION",
        "S3_BUCKET",
        "S3_ACCESS_KEY_ID",
        "S3_SECRET_ACCESS_KEY",
        "RESERVATION_LIMIT_PER_ZONE_PER_DAY",
        "RESERVATION_LIMIT_PER_USER",
    ):
        monkeypatch.delenv(k, raising=False)
    auth_module._login_attempts.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _user(email, dni, full_name, floor, role, community):
    return User(
        email=email,
        password_hash=generate_password_hash(PASSWORD),
        dni=dni,
        full_name=full_name,
        floor=floor,
        role=role,
        community=community,
        is_active=True,
    )


@pytest.fixture()
def seed(app):
    """
    Two communities:
      A-001: president Pat, residents Rita and Ramon, plus an admin account.
      B-001: president Bea, resident Bruno.
    """
    with session_scope(app) as s:
        a = Community(name="Residencial Sol", address="Calle Mayor 1", postal_code="28001", community_code="A-001")
        b = Community(name="Edificio Luna", address="Avenida Norte 9", postal_code="08002", community_code="B-001")
        s.add_all([a, b])
        s.flush()

        pat = _user("pres@a.test", "11111111A", "Pat President", "1A", "PRESIDENT", a)
        rita = _user("rita@a.test", "22222222B", "Rita Resident", "2B", "RESIDENT", a)
        ramon = _user("ramon@a.test", "33333333C", "Ramon Resident", "3C", "RESIDENT", a)
        admin = _user("admin@a.test", "44444444D", "Ada Admin", "", "ADMIN", a)
        bea = _user("pres@b.test", "55555555E", "Bea President", "1A", "PRESIDENT", b)
        bruno = _user("bruno@b.test", "66666666F", "Bruno Resident", "4D", "RESIDENT", b)
        s.add_all([pat, rita, ramon, admin, bea, bruno])
        s.flush()
        a.president = pat
        b.president = bea

        return SimpleNamespace(
            community_a=a.id,
            community_b=b.id,
            pat=pat.id,
            rita=rita.id,
            ramon=ramon.id,
            admin=admin.id,
            bea=bea.id,
            bruno=bruno.id,
        )


@pytest.fixture()
def login(app):
    """Returns a function that logs an account in on a fresh client and arms the CSRF header."""

    def _login(email, password=PASSWORD):
        c = app.test_client()
        r = c.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.json
        c.environ_base["HTTP_X_CSRF_TOKEN"] = r.json["csrf_token"]
        return c

    return _login
