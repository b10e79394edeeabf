from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.feedbackhub.db import db_session
from app.feedbackhub.directory import get_team
from app.feedbackhub.errors import error_response, not_found, validation_failed
from app.feedbackhub.models import User
from app.feedbackhub.modules.teams import service
from app.feedbackhub.rbac import login_required, require_permission
from app.feedbackhub.utils import json_payload, pagination_meta, parse_pagination

bp = Blueprint("teams", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _body_error():
    return error_response(validation_failed("Request body must be a JSON object."))


# ---------- List ----------
@bp.get("/teams")
@login_required
def teams_list():
    s = db_session()
    page, limit = parse_pagination(request.args)
    filters = {key: request.args.get(key) for key in ("search", "department", "status", "manager_id")}
    teams, total = service.list_teams(s, filters, page=page, limit=limit)
    return jsonify(
        {
            "data": [service.serialize_team(t) for t in teams],
            "pagination": pagination_meta(total, page, limit),
        }
    )


# ---------- Create ----------
@bp.post("/teams")
@require_permission("teams.create")
def teams_create():
    payload = json_payload(request)
    if payload is None:
        return _body_error()
    s = db_session()
    team, err = service.create_team(s, payload, _current_user())
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": service.serialize_team(team, detail=True)}), 201


# ---------- Detail ----------
@bp.get("/teams/<team_id>")
@login_required
def team_detail(team_id: str):
    s = db_session()
    team = get_team(s, team_id)
    if not team:
        return error_response(not_found("Team"))
    return jsonify({"data": service.serialize_team(team, detail=True)})


# ---------- Update / delete ----------
@bp.put("/teams/<team_id>")
@login_required
def team_update(team_id: str):
    payload = json_payload(request)
    if payload is None:
        return _body_error()
    s = db_session()
    team, err = service.update_team(s, team_id, payload, _current_user())
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": service.serialize_team(team, detail=True)})


@bp.delete("/teams/<team_id>")
@login_required
def team_delete(team_id: str):
    s = db_session()
    err = service.delete_team(s, team_id, _current_user())
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": {"id": team_id, "deleted": True}})


# ---------- Members ----------
@bp.post("/teams/<team_id>/members")
@login_required
def team_member_add(team_id: str):
    payload = json_payload(request)
    if payload is None:
        return _body_error()
    s = db_session()
    team, err = service.add_member(s, team_id, payload, _current_user())
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": service.serialize_team(team, detail=True)}), 201


@bp.delete("/teams/<team_id>/members")
@login_required
def team_member_remove(team_id: str):
    payload = json_payload(request)
    if payload is None:
        return _body_error()
    s = db_session()
    team, err = service.remove_member(s, team_id, payload, _current_user())
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": service.serialize_team(team, detail=True)})
