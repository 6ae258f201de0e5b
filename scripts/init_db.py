import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.micomunity.constants import ROLE_ADMIN
from app.micomunity.models import Community, User
from scripts._db_utils import script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the administrator account in an idempotent way.
    Does NOT overwrite an existing admin user's password.

    ADMIN_COMMUNITY_CODE (optional) attaches the admin to an existing community
    so that community-scoped admin endpoints have something to act on.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@micomunity.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    admin_dni = (os.environ.get("ADMIN_DNI") or "00000000T").strip().upper()
    community_code = (os.environ.get("ADMIN_COMMUNITY_CODE") or "").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///micomunity.db").strip()

    # Use a direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                dni=admin_dni,
                full_name="Administrator",
                floor="",
                role=ROLE_ADMIN,
                is_active=True,
            )
            s.add(user)
        user.role = ROLE_ADMIN

        if community_code:
            community = s.query(Community).filter(Community.community_code == community_code).one_or_none()
            if community:
                user.community_id = community.id
            else:
                print(f"WARNING: ADMIN_COMMUNITY_CODE={community_code!r} not found; admin left unattached.")

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
