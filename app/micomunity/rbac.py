from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.micomunity.constants import ROLE_ADMIN, ROLE_PRESIDENT, ROLE_RESIDENT
from app.micomunity.errors import PermissionDenied, Unauthorized
from app.micomunity.models import User

_MEMBER_PERMISSIONS = frozenset(
    {
        "profile.view",
        "profile.edit",
        "community.view",
        "community.change",
        "incidents.create",
        "incidents.view",
        "incidents.delete",
        "complaints.create",
        "complaints.view",
        "complaints.delete",
        "documents.view",
        "posts.create",
        "posts.view",
        "posts.delete",
        "zones.view",
        "reservations.create",
        "reservations.view",
        "votes.view",
        "votes.cast",
    }
)

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_RESIDENT: _MEMBER_PERMISSIONS,
    ROLE_PRESIDENT: _MEMBER_PERMISSIONS
    | {
        "community.transfer",
        "community.members",
        "incidents.update_status",
        "complaints.reply",
        "documents.publish",
        "documents.delete",
        "zones.manage",
        "reservations.history",
        "votes.create",
        "votes.delete",
        "chat.stats",
    },
    ROLE_ADMIN: frozenset(
        {
            "community.members",
            "incidents.create",
            "incidents.view",
            "incidents.update_status",
            "incidents.delete",
            "complaints.view",
            "complaints.reply",
            "documents.view",
            "posts.view",
            "zones.view",
            "reservations.view",
            "votes.view",
            "chat.stats",
            "chat.moderate",
        }
    ),
}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    return permission_key in ROLE_PERMISSIONS.get(user.role, frozenset())


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            raise Unauthorized("Authentication required.")
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated -> 401 (API clients re-login on this).
            if not user or not user.is_active:
                raise Unauthorized("Authentication required.")
            # Authenticated but unauthorized -> 403
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                raise PermissionDenied("You do not have permission to perform this action.")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
