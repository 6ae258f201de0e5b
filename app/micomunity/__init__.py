import logging
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, request, session
from werkzeug.exceptions import HTTPException

from app.micomunity.config import load_config
from app.micomunity.db import db_session, init_db, teardown_db_session
from app.micomunity.errors import AppError
from app.micomunity.routes import bp as routes_bp
from app.micomunity.auth import bp as auth_bp, load_current_user
from app.micomunity.modules.profile.routes import bp as profile_bp
from app.micomunity.modules.community.routes import bp as community_bp
from app.micomunity.modules.incidents.routes import bp as incidents_bp
from app.micomunity.modules.complaints.routes import bp as complaints_bp
from app.micomunity.modules.documents.routes import bp as documents_bp
from app.micomunity.modules.posts.routes import api_bp as api_posts_bp, bp as posts_bp
from app.micomunity.modules.reservations.routes import bp as reservations_bp, zones_bp
from app.micomunity.modules.voting.routes import bp as votes_bp
from app.micomunity.modules.chat.routes import bp as chat_bp, sock, ws_bp as chat_ws_bp
from app.micomunity.modules.chat.service import ChatHub


def _json_error(status: int, message: str, details: dict | None = None):
    body: dict = {"error": message, "status": status, "request_id": getattr(g, "request_id", None)}
    if details:
        body["details"] = details
    return body, status


def _rollback_request_session() -> None:
    s = getattr(g, "db_session", None)
    if s is not None:
        s.rollback()


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.url_map.strict_slashes = False
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    from app.micomunity.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/register/logout hand out the token, so they cannot require it.
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return _json_error(400, "CSRF token missing or invalid.")

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.extensions["chat_hub"] = ChatHub(history_limit=app.config["CHAT_HISTORY_LIMIT"])
    sock.init_app(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(profile_bp, url_prefix="/api/users")
    app.register_blueprint(community_bp, url_prefix="/api/community")
    app.register_blueprint(incidents_bp, url_prefix="/api/incidents")
    app.register_blueprint(complaints_bp, url_prefix="/api/complaints")
    app.register_blueprint(documents_bp, url_prefix="/api/documents")
    app.register_blueprint(posts_bp, url_prefix="/posts")
    app.register_blueprint(api_posts_bp, url_prefix="/api/posts")
    app.register_blueprint(zones_bp, url_prefix="/api/zones")
    app.register_blueprint(reservations_bp, url_prefix="/api/reservations")
    app.register_blueprint(votes_bp, url_prefix="/api/votes")
    app.register_blueprint(chat_bp, url_prefix="/api/chat")
    app.register_blueprint(chat_ws_bp)

    def _load_user_wrapper():
        if request.path.startswith(("/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(AppError)
    def _err_app(e: AppError):  # type: ignore[no-redef]
        _rollback_request_session()
        if e.status_code == 403:
            app.logger.warning(
                "Forbidden: %s missing_permission=%s request_id=%s",
                e.message,
                getattr(g, "missing_permission", None),
                getattr(g, "request_id", None),
            )
        return _json_error(e.status_code, e.message, e.details)

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        limit_mb = (app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        return _json_error(413, f"File too large. Maximum request size is {limit_mb}MB.")

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return _json_error(e.code or 500, e.description or e.name)

    @app.errorhandler(Exception)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        _rollback_request_session()
        return _json_error(500, "Internal server error.")

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
