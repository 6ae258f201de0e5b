from __future__ import annotations

import re
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, request, session
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app.micomunity.audit import record_event
from app.micomunity.constants import (
    DNI_PATTERN,
    EMAIL_PATTERN,
    MIN_PASSWORD_LENGTH,
    POSTAL_CODE_PATTERN,
    ROLE_PRESIDENT,
    ROLE_RESIDENT,
)
from app.micomunity.db import db_session
from app.micomunity.errors import TooManyRequests, Unauthorized, ValidationError
from app.micomunity.models import Community, User
from app.micomunity.rbac import require_login
from app.micomunity.security import ensure_csrf_token, rotate_csrf_token
from app.micomunity.utils import json_body

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None
        return
    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


def user_payload(user: User) -> dict:
    community = user.community
    return {
        "id": user.id,
        "email": user.email,
        "name": user.full_name,
        "role": user.role,
        "community_id": community.id if community else None,
        "community_code": community.community_code if community else None,
        "community_name": community.name if community else None,
    }


def _clean(payload: dict, key: str) -> str:
    value = payload.get(key)
    return str(value).strip() if value is not None else ""


def _validate_account_fields(s: Session, payload: dict) -> dict:
    """Shared checks for both registration flows. Returns the cleaned fields."""
    fields = {
        "dni": _clean(payload, "dni").upper(),
        "full_name": _clean(payload, "full_name"),
        "floor": _clean(payload, "floor"),
        "email": _clean(payload, "email").lower(),
        "password": payload.get("password") or "",
        "confirm_password": payload.get("confirm_password") or "",
    }
    errors: dict[str, str] = {}
    for key in ("dni", "full_name", "floor", "email"):
        if not fields[key]:
            errors[key] = f"{key} is required."
    if fields["dni"] and not re.fullmatch(DNI_PATTERN, fields["dni"]):
        errors["dni"] = "DNI format is not valid."
    if fields["email"] and not re.fullmatch(EMAIL_PATTERN, fields["email"]):
        errors["email"] = "Email format is not valid."
    if len(fields["password"]) < MIN_PASSWORD_LENGTH:
        errors["password"] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    if errors:
        raise ValidationError("Invalid registration data.", details=errors)

    if fields["password"] != fields["confirm_password"]:
        raise ValidationError("Passwords do not match.")
    if s.query(User).filter(User.email == fields["email"]).one_or_none():
        raise ValidationError("Email is already registered.")
    if s.query(User).filter(User.dni == fields["dni"]).one_or_none():
        raise ValidationError("DNI is already registered.")
    return fields


def _new_user(fields: dict, *, role: str, community: Community) -> User:
    return User(
        email=fields["email"],
        password_hash=generate_password_hash(fields["password"]),
        dni=fields["dni"],
        full_name=fields["full_name"],
        floor=fields["floor"],
        role=role,
        community=community,
        is_active=True,
    )


def register_president(s: Session, payload: dict) -> User:
    """Create a community together with its president."""
    fields = _validate_account_fields(s, payload)

    community_code = _clean(payload, "community_code")
    name = _clean(payload, "community_name")
    address = _clean(payload, "address")
    postal_code = _clean(payload, "postal_code")
    errors: dict[str, str] = {}
    if not community_code:
        errors["community_code"] = "community_code is required."
    if not name:
        errors["community_name"] = "community_name is required."
    if not address:
        errors["address"] = "address is required."
    if not re.fullmatch(POSTAL_CODE_PATTERN, postal_code):
        errors["postal_code"] = "Postal code must have 5 digits."
    if errors:
        raise ValidationError("Invalid community data.", details=errors)
    if s.query(Community).filter(Community.community_code == community_code).one_or_none():
        raise ValidationError("Community code is already in use.")

    community = Community(name=name, address=address, postal_code=postal_code, community_code=community_code)
    s.add(community)
    s.flush()

    president = _new_user(fields, role=ROLE_PRESIDENT, community=community)
    s.add(president)
    s.flush()
    community.president = president

    record_event(
        s,
        actor=president,
        action="auth.register_president",
        entity_type="Community",
        entity_id=str(community.id),
        metadata={"community_code": community.community_code},
    )
    return president


def register_resident(s: Session, payload: dict) -> User:
    """Join an existing community by its code."""
    fields = _validate_account_fields(s, payload)
    community_code = _clean(payload, "community_code")
    if not community_code:
        raise ValidationError("community_code is required.")
    community = s.query(Community).filter(Community.community_code == community_code).one_or_none()
    if not community:
        raise ValidationError("Community code is not valid.")

    user = _new_user(fields, role=ROLE_RESIDENT, community=community)
    s.add(user)
    s.flush()
    record_event(
        s,
        actor=user,
        action="auth.register",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"community_code": community.community_code},
    )
    return user


def _login_response(user: User) -> dict:
    session.clear()
    session["user_id"] = user.id
    session.permanent = True
    return {"user": user_payload(user), "csrf_token": rotate_csrf_token()}


@bp.post("/register/president")
def register_president_post():
    s = db_session()
    user = register_president(s, json_body())
    s.commit()
    current_app.logger.info("President registered: user_id=%s community_id=%s", user.id, user.community_id)
    return _login_response(user), 201


@bp.post("/register")
def register_post():
    s = db_session()
    user = register_resident(s, json_body())
    s.commit()
    current_app.logger.info("Resident registered: user_id=%s community_id=%s", user.id, user.community_id)
    return _login_response(user), 201


@bp.post("/login")
def login_post():
    payload = json_body()
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        raise TooManyRequests("Too many login attempts. Please wait 5 minutes.")

    _record_attempt(ip)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        raise Unauthorized("Invalid credentials.")

    _login_attempts[ip].clear()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return _login_response(user)


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return {"ok": True, "csrf_token": ensure_csrf_token()}


@bp.get("/me")
@require_login
def me():
    return {"user": user_payload(g.current_user), "csrf_token": ensure_csrf_token()}
