from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy import func, select
from werkzeug.security import check_password_hash

from app.feedbackhub.audit import record_event
from app.feedbackhub.db import db_session
from app.feedbackhub.errors import PolicyError, RATE_LIMITED, error_response, not_authenticated, permission_denied
from app.feedbackhub.models import User
from app.feedbackhub.modules.users.service import serialize_user
from app.feedbackhub.rbac import login_required
from app.feedbackhub.security import ensure_csrf_token
from app.feedbackhub.utils import is_valid_id

bp = Blueprint("auth", __name__)

_TOKEN_SALT = "feedbackhub.auth"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=_TOKEN_SALT)


def issue_token(user: User) -> str:
    return _serializer().dumps({"user_id": user.id})


def verify_token(token: str) -> str | None:
    """Return the user id carried by a bearer token, or None if it is invalid or expired."""
    try:
        data = _serializer().loads(token, max_age=current_app.config["TOKEN_MAX_AGE"])
    except SignatureExpired:
        current_app.logger.info("Expired bearer token (request_id=%s)", getattr(g, "request_id", None))
        return None
    except BadSignature:
        return None
    user_id = data.get("user_id") if isinstance(data, dict) else None
    return user_id if is_valid_id(user_id) else None


def _login_attempts() -> dict[str, list[datetime]]:
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    attempts = _login_attempts()
    cutoff = datetime.utcnow() - timedelta(seconds=current_app.config["LOGIN_RATE_WINDOW"])
    attempts[ip] = [t for t in attempts[ip] if t > cutoff]
    return len(attempts[ip]) >= current_app.config["LOGIN_RATE_LIMIT"]


def _record_attempt(ip: str) -> None:
    _login_attempts()[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from a bearer token or, failing that, the signed session cookie.
    Also assigns a per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    g.current_user = None
    g.auth_via = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    header = request.headers.get("Authorization") or ""
    if header.startswith("Bearer "):
        user_id, via = verify_token(header[len("Bearer "):].strip()), "token"
    else:
        user_id, via = session.get("user_id"), "session"
    if not user_id:
        return

    s = db_session()
    user = s.get(User, user_id)
    if not user or not user.is_active:
        if via == "session":
            session.pop("user_id", None)
        return
    g.current_user = user
    g.auth_via = via


@bp.post("/login")
def login_post():
    payload = request.get_json(silent=True) or {}
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return error_response(PolicyError(RATE_LIMITED, "Too many login attempts. Please wait and try again."))
    _record_attempt(ip)

    s = db_session()
    user = s.scalar(select(User).where(func.lower(User.email) == email))
    if not user or not check_password_hash(user.password_hash, password):
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
        return error_response(not_authenticated("Invalid credentials."))
    if not user.is_active:
        record_event(s, actor=user, action="auth.login_failed", entity_type="User", entity_id=user.id, reason=f"Account {user.status}")
        s.commit()
        return error_response(permission_denied("Your account is inactive, suspended or pending activation."))

    session["user_id"] = user.id
    session.permanent = True
    _login_attempts()[ip].clear()
    user.last_login_at = datetime.utcnow()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=user.id)
    s.commit()
    return jsonify({"data": {"token": issue_token(user), "user": serialize_user(user)}})


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=user.id)
        s.commit()
    session.pop("user_id", None)
    return jsonify({"data": {"ok": True}})


@bp.get("/me")
@login_required
def me():
    return jsonify({"data": serialize_user(g.current_user)})


@bp.get("/csrf")
def csrf():
    return jsonify({"data": {"csrf_token": ensure_csrf_token()}})
