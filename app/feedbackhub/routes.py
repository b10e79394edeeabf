from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.feedbackhub.db import db_session

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Readiness: JSON, including a database round trip."""
    try:
        db_session().execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        current_app.logger.error("Health check: database unreachable: %s", e)
        return {"ok": False, "db": False}, 503
    return {"ok": True, "db": True}


@bp.get("/healthz")
def healthz():
    """Liveness probe. No DB access."""
    return "ok", 200
