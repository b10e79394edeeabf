import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from app.feedbackhub.config import load_config
from app.feedbackhub.db import init_db, teardown_db_session
from app.feedbackhub.routes import bp as routes_bp
from app.feedbackhub.auth import bp as auth_bp, load_current_user
from app.feedbackhub.admin import bp as admin_bp
from app.feedbackhub.errors import error_response, permission_denied
from app.feedbackhub.modules.feedback.api import bp as feedback_bp
from app.feedbackhub.modules.teams.api import bp as teams_bp
from app.feedbackhub.modules.users.api import bp as users_bp
from app.feedbackhub.modules.reports.api import bp as reports_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(seconds=app.config["TOKEN_MAX_AGE"])
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.sort_keys = False

    level = getattr(logging, app.config["LOG_LEVEL"], logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.logger.setLevel(level)

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
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(admin_bp, url_prefix="/api")
    app.register_blueprint(feedback_bp, url_prefix="/api")
    app.register_blueprint(teams_bp, url_prefix="/api")
    app.register_blueprint(users_bp, url_prefix="/api")
    app.register_blueprint(reports_bp, url_prefix="/api")

    app.before_request(load_current_user)

    # CSRF protection for cookie sessions; bearer-token clients are exempt.
    from app.feedbackhub.security import validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
            return None
        # Allow safe auth endpoints to pass through (login/logout)
        if (request.endpoint or "").startswith("auth."):
            return None
        if getattr(g, "auth_via", None) != "session":
            return None
        if not validate_csrf(request):
            return error_response(permission_denied("CSRF token missing or invalid."))
        return None

    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(HTTPException)
    def _err_http(e):  # type: ignore[no-redef]
        # Routing redirects (e.g. trailing slash) are not errors.
        if e.code is None or e.code < 400:
            return e
        kind = "NOT_FOUND" if e.code == 404 else "HTTP_ERROR"
        return jsonify({"error": {"kind": kind, "message": e.description}}), e.code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"error": {"kind": "INTERNAL_ERROR", "message": "Internal server error.", "request_id": rid}}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
