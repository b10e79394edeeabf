from datetime import date, datetime, time, timedelta

from flask import Blueprint, jsonify, request
from sqlalchemy import select

from app.feedbackhub.db import db_session
from app.feedbackhub.models import AuditEvent
from app.feedbackhub.rbac import require_permission
from app.feedbackhub.utils import isoformat

bp = Blueprint("admin", __name__)

AUDIT_PAGE_SIZE = 200


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _serialize_event(ev: AuditEvent) -> dict:
    return {
        "id": ev.id,
        "created_at": isoformat(ev.created_at),
        "request_id": ev.request_id,
        "actor_user_id": ev.actor_user_id,
        "actor_user_email": ev.actor_user_email,
        "action": ev.action,
        "entity_type": ev.entity_type,
        "entity_id": ev.entity_id,
        "reason": ev.reason,
        "metadata_json": ev.metadata_json,
        "client_ip": ev.client_ip,
    }


@bp.get("/audit")
@require_permission("audit.view")
def audit_list():
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip().lower()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    q = select(AuditEvent)
    if action:
        q = q.where(AuditEvent.action == action)
    if actor_email:
        q = q.where(AuditEvent.actor_user_email.ilike(f"%{actor_email}%"))
    if date_from:
        q = q.where(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.where(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = s.scalars(q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(AUDIT_PAGE_SIZE)).all()
    return jsonify({"data": [_serialize_event(ev) for ev in events]})
