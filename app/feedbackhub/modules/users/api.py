from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.feedbackhub.db import db_session
from app.feedbackhub.directory import get_user
from app.feedbackhub.errors import error_response, not_found, validation_failed
from app.feedbackhub.models import User
from app.feedbackhub.modules.users import service
from app.feedbackhub.rbac import login_required, require_permission
from app.feedbackhub.utils import json_payload, pagination_meta, parse_pagination

bp = Blueprint("users", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _body_error():
    return error_response(validation_failed("Request body must be a JSON object."))


@bp.get("/users")
@require_permission("users.view")
def users_list():
    s = db_session()
    page, limit = parse_pagination(request.args)
    filters = {key: request.args.get(key) for key in ("search", "role", "status", "department")}
    users, total = service.list_users(s, filters, page=page, limit=limit)
    return jsonify(
        {
            "data": [service.serialize_user(u) for u in users],
            "pagination": pagination_meta(total, page, limit),
        }
    )


@bp.post("/users")
@require_permission("users.manage")
def users_create():
    payload = json_payload(request)
    if payload is None:
        return _body_error()
    s = db_session()
    user, err = service.create_user(s, payload, _current_user())
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": service.serialize_user(user)}), 201


@bp.get("/users/<user_id>")
@login_required
def user_detail(user_id: str):
    s = db_session()
    user = get_user(s, user_id)
    if not user:
        return error_response(not_found("User"))
    return jsonify({"data": service.serialize_user(user)})


@bp.put("/users/<user_id>")
@login_required
def user_update(user_id: str):
    payload = json_payload(request)
    if payload is None:
        return _body_error()
    s = db_session()
    user, err = service.update_user(s, user_id, payload, _current_user())
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": service.serialize_user(user)})


@bp.delete("/users/<user_id>")
@require_permission("users.manage")
def user_delete(user_id: str):
    s = db_session()
    err = service.delete_user(s, user_id, _current_user())
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": {"id": user_id, "deleted": True}})


@bp.put("/users/<user_id>/password")
@login_required
def user_password(user_id: str):
    payload = json_payload(request)
    if payload is None:
        return _body_error()
    s = db_session()
    err = service.change_password(s, user_id, payload, _current_user())
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": {"ok": True}})
