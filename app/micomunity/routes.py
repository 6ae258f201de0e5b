from flask import Blueprint
from sqlalchemy import text

from app.micomunity.db import db_session

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint with a database round trip. Returns JSON."""
    db_session().execute(text("SELECT 1"))
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200
