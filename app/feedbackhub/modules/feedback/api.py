from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.feedbackhub.db import db_session
from app.feedbackhub.directory import Actor, actor_from_user
from app.feedbackhub.errors import error_response, validation_failed
from app.feedbackhub.models import User
from app.feedbackhub.modules.feedback import service
from app.feedbackhub.modules.feedback.serializers import (
    serialize_comment,
    serialize_competency,
    serialize_feedback,
    serialize_history,
)
from app.feedbackhub.rbac import login_required, require_permission
from app.feedbackhub.utils import json_payload, pagination_meta, parse_pagination

bp = Blueprint("feedback", __name__)

LIST_FILTERS = ("type", "status", "priority", "giver_id", "receiver_id", "team_id", "search", "sort_by", "sort_order")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _actor() -> Actor:
    return actor_from_user(_current_user())


def _body_error():
    return error_response(validation_failed("Request body must be a JSON object."))


# ---------- List ----------
@bp.get("/feedbacks")
@login_required
def feedbacks_list():
    s = db_session()
    actor = _actor()
    page, limit = parse_pagination(request.args)
    filters = {key: request.args.get(key) for key in LIST_FILTERS}
    items, total = service.list_feedbacks(s, actor, filters, page=page, limit=limit)
    return jsonify(
        {
            "data": [serialize_feedback(f, actor) for f in items],
            "pagination": pagination_meta(total, page, limit),
        }
    )


# ---------- Create ----------
@bp.post("/feedbacks")
@login_required
def feedbacks_create():
    payload = json_payload(request)
    if payload is None:
        return _body_error()
    s = db_session()
    u = _current_user()
    feedback, err = service.create_feedback(s, payload, u)
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": serialize_feedback(feedback, actor_from_user(u), detail=True)}), 201


# ---------- Detail ----------
@bp.get("/feedbacks/<feedback_id>")
@login_required
def feedback_detail(feedback_id: str):
    s = db_session()
    actor = _actor()
    feedback, err = service.get_feedback(s, feedback_id, actor)
    if err:
        return error_response(err)
    return jsonify({"data": serialize_feedback(feedback, actor, detail=True)})


@bp.get("/feedbacks/<feedback_id>/history")
@login_required
def feedback_history(feedback_id: str):
    s = db_session()
    actor = _actor()
    feedback, err = service.get_feedback(s, feedback_id, actor)
    if err:
        return error_response(err)
    return jsonify({"data": [serialize_history(e, actor, feedback) for e in feedback.history]})


# ---------- Update ----------
@bp.put("/feedbacks/<feedback_id>")
@login_required
def feedback_update(feedback_id: str):
    payload = json_payload(request)
    if payload is None:
        return _body_error()
    s = db_session()
    u = _current_user()
    feedback, err = service.update_feedback(s, feedback_id, payload, u)
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": serialize_feedback(feedback, actor_from_user(u), detail=True)})


# ---------- Delete ----------
@bp.delete("/feedbacks/<feedback_id>")
@login_required
def feedback_delete(feedback_id: str):
    s = db_session()
    err = service.delete_feedback(s, feedback_id, _current_user())
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": {"id": feedback_id, "deleted": True}})


# ---------- Comments ----------
@bp.post("/feedbacks/<feedback_id>/comments")
@login_required
def comment_create(feedback_id: str):
    payload = json_payload(request)
    if payload is None:
        return _body_error()
    s = db_session()
    u = _current_user()
    comment, err = service.add_comment(s, feedback_id, payload, u)
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": serialize_comment(comment, actor_from_user(u))}), 201


@bp.put("/feedbacks/comments/<comment_id>")
@login_required
def comment_update(comment_id: str):
    payload = json_payload(request)
    if payload is None:
        return _body_error()
    s = db_session()
    u = _current_user()
    comment, err = service.update_comment(s, comment_id, payload, u)
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": serialize_comment(comment, actor_from_user(u))})


@bp.delete("/feedbacks/comments/<comment_id>")
@login_required
def comment_delete(comment_id: str):
    s = db_session()
    err = service.delete_comment(s, comment_id, _current_user())
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": {"id": comment_id, "deleted": True}})


# ---------- Competencies ----------
@bp.get("/competencies")
@login_required
def competencies_list():
    s = db_session()
    return jsonify({"data": [serialize_competency(c) for c in service.list_competencies(s)]})


@bp.post("/competencies")
@require_permission("competencies.manage")
def competencies_create():
    payload = json_payload(request)
    if payload is None:
        return _body_error()
    s = db_session()
    competency, err = service.create_competency(s, payload, _current_user())
    if err:
        return error_response(err)
    s.commit()
    return jsonify({"data": serialize_competency(competency)}), 201
