"""
Dashboard statistics.

Aggregates are computed over the feedbacks the viewer may see, using the same
visibility clause as the feedback list.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.feedbackhub.constants import STATUS_PENDING, USER_ACTIVE
from app.feedbackhub.directory import Actor, get_users
from app.feedbackhub.models import User
from app.feedbackhub.modules.feedback.models import Feedback
from app.feedbackhub.modules.feedback.service import visibility_clause
from app.feedbackhub.modules.teams.models import Team
from app.feedbackhub.modules.users.service import user_summary

TREND_MONTHS = 6
TOP_PERFORMERS = 5


def _month_key(dt: datetime) -> str:
    return f"{dt.year:04d}-{dt.month:02d}"


def _last_months(now: datetime, n: int) -> list[str]:
    year, month = now.year, now.month
    keys = []
    for _ in range(n):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def dashboard_stats(s: Session, actor: Actor, *, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()

    scope = select(Feedback)
    if not actor.is_admin:
        scope = scope.where(visibility_clause(actor))
    feedbacks = list(s.scalars(scope))

    ratings = [f.rating for f in feedbacks]
    months = _last_months(now, TREND_MONTHS)
    by_month: dict[str, list[int]] = defaultdict(list)
    by_receiver: dict[str, list[int]] = defaultdict(list)
    for f in feedbacks:
        key = _month_key(f.created_at)
        if key in months:
            by_month[key].append(f.rating)
        by_receiver[f.receiver_id].append(f.rating)

    ranked = sorted(
        by_receiver.items(),
        key=lambda kv: (-(sum(kv[1]) / len(kv[1])), -len(kv[1]), kv[0]),
    )[:TOP_PERFORMERS]
    receivers = get_users(s, [uid for uid, _ in ranked])

    return {
        "total_users": s.scalar(select(func.count(User.id))) or 0,
        "active_users": s.scalar(select(func.count(User.id)).where(User.status == USER_ACTIVE)) or 0,
        "total_teams": s.scalar(select(func.count(Team.id))) or 0,
        "total_feedbacks": len(feedbacks),
        "pending_feedbacks": sum(1 for f in feedbacks if f.status == STATUS_PENDING),
        "average_rating": round(sum(ratings) / len(ratings), 2) if ratings else None,
        "feedback_trends": [
            {
                "month": m,
                "count": len(by_month[m]),
                "average_rating": round(sum(by_month[m]) / len(by_month[m]), 2) if by_month[m] else None,
            }
            for m in months
        ],
        "top_performers": [
            {
                **user_summary(receivers[uid]),
                "average_rating": round(sum(vals) / len(vals), 2),
                "feedback_count": len(vals),
            }
            for uid, vals in ranked
            if uid in receivers
        ],
    }
