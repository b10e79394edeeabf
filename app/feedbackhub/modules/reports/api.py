from flask import Blueprint, g, jsonify

from app.feedbackhub.db import db_session
from app.feedbackhub.directory import actor_from_user
from app.feedbackhub.modules.reports.service import dashboard_stats
from app.feedbackhub.rbac import require_permission

bp = Blueprint("reports", __name__)


@bp.get("/reports/dashboard")
@require_permission("reports.view")
def dashboard():
    s = db_session()
    return jsonify({"data": dashboard_stats(s, actor_from_user(g.current_user))})
