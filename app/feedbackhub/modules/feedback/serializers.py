"""
JSON representations of feedback records.

All feedback responses (detail, list, create, update) go through
`serialize_feedback`, so anonymous-giver redaction is applied identically on
every path.
"""
from __future__ import annotations

from app.feedbackhub.constants import ANONYMOUS_GIVER
from app.feedbackhub.directory import Actor
from app.feedbackhub.modules.feedback.models import (
    Competency,
    Feedback,
    FeedbackComment,
    FeedbackCompetency,
    FeedbackHistory,
)
from app.feedbackhub.modules.feedback.policy import hides_giver, redact_giver
from app.feedbackhub.modules.users.service import user_summary
from app.feedbackhub.utils import isoformat


def serialize_competency(c: Competency) -> dict:
    return {"id": c.id, "name": c.name, "description": c.description, "category": c.category}


def _serialize_rating(fc: FeedbackCompetency) -> dict:
    return {
        "competency_id": fc.competency_id,
        "competency_name": fc.competency.name if fc.competency else None,
        "rating": fc.rating,
        "comments": fc.comments,
    }


def serialize_comment(comment: FeedbackComment, viewer: Actor, feedback: Feedback | None = None) -> dict:
    feedback = feedback or comment.feedback
    author = user_summary(comment.author) if comment.author else None
    # The anonymous giver's own comments must not reveal who they are.
    if feedback is not None and comment.user_id == feedback.giver_id and hides_giver(feedback, viewer):
        author = dict(ANONYMOUS_GIVER)
    return {
        "id": comment.id,
        "feedback_id": comment.feedback_id,
        "author": author,
        "content": comment.content,
        "is_internal": comment.is_internal,
        "created_at": isoformat(comment.created_at),
        "updated_at": isoformat(comment.updated_at),
    }


def serialize_history(entry: FeedbackHistory, viewer: Actor, feedback: Feedback) -> dict:
    user_id = entry.user_id
    if user_id == feedback.giver_id and hides_giver(feedback, viewer):
        user_id = ANONYMOUS_GIVER["id"]
    return {
        "id": entry.id,
        "user_id": user_id,
        "action": entry.action,
        "changed_field": entry.changed_field,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "created_at": isoformat(entry.created_at),
    }


def serialize_feedback(feedback: Feedback, viewer: Actor, *, detail: bool = False) -> dict:
    out = {
        "id": feedback.id,
        "type": feedback.type,
        "title": feedback.title,
        "description": feedback.description,
        "rating": feedback.rating,
        "priority": feedback.priority,
        "status": feedback.status,
        "is_anonymous": feedback.is_anonymous,
        "is_confidential": feedback.is_confidential,
        "due_date": isoformat(feedback.due_date),
        "completed_at": isoformat(feedback.completed_at),
        "created_at": isoformat(feedback.created_at),
        "updated_at": isoformat(feedback.updated_at),
        "giver": redact_giver(feedback, viewer, user_summary(feedback.giver)),
        "receiver": user_summary(feedback.receiver),
        "team": {"id": feedback.team.id, "name": feedback.team.name} if feedback.team else None,
        "competencies": [_serialize_rating(fc) for fc in feedback.competencies],
        "comment_count": len(feedback.comments),
    }
    if detail:
        out["comments"] = [serialize_comment(c, viewer, feedback) for c in feedback.comments]
    return out
