from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from werkzeug.security import check_password_hash, generate_password_hash

from app.micomunity.audit import record_event
from app.micomunity.constants import MIN_PASSWORD_LENGTH
from app.micomunity.errors import ValidationError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.micomunity.models import User

logger = logging.getLogger(__name__)


def profile_payload(user: "User") -> dict:
    return {
        "email": user.email,
        "role": user.role,
        "dni": user.dni,
        "full_name": user.full_name,
        "floor": user.floor,
    }


def change_password(s: "Session", user: "User", payload: dict) -> None:
    current = payload.get("current_password") or ""
    new = payload.get("new_password") or ""
    repeat = payload.get("repeat_new_password") or ""

    if new != repeat:
        raise ValidationError("New passwords do not match.")
    if len(new) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if not check_password_hash(user.password_hash, current):
        raise ValidationError("Current password is incorrect.")
    if check_password_hash(user.password_hash, new):
        raise ValidationError("New password must be different from the current one.")

    user.password_hash = generate_password_hash(new)
    record_event(s, actor=user, action="user.password_change", entity_type="User", entity_id=str(user.id))
    logger.info("Password changed for user_id=%s", user.id)
