"""
Feedback access and lifecycle policy.

Every feedback handler consults these rules; none of them re-implements a
check. Functions are pure: they read the already-loaded feedback (or comment)
and an `Actor` snapshot and perform no I/O.

`check_*` functions return a `PolicyError` (or None) so callers can tell
PERMISSION_DENIED ("never allowed") apart from INVALID_STATE ("not allowed
in the current status"). The `can_*` predicates are the boolean views.
"""
from __future__ import annotations

from typing import Any, Protocol

from app.feedbackhub.constants import ANONYMOUS_GIVER, LOCKED_STATUSES, STATUS_APPROVED, STATUS_ARCHIVED
from app.feedbackhub.directory import Actor
from app.feedbackhub.errors import PolicyError, invalid_state, permission_denied


class FeedbackLike(Protocol):
    giver_id: str
    receiver_id: str
    team_id: str | None
    status: str
    is_anonymous: bool
    is_confidential: bool


class CommentLike(Protocol):
    user_id: str


def _is_participant(feedback: FeedbackLike, actor: Actor) -> bool:
    return actor.id in (feedback.giver_id, feedback.receiver_id)


def _is_open_team_member(feedback: FeedbackLike, actor: Actor) -> bool:
    return bool(feedback.team_id) and not feedback.is_confidential and actor.is_member(feedback.team_id)


# ---------- View ----------
def can_view(feedback: FeedbackLike, actor: Actor) -> bool:
    if actor.is_admin:
        return True
    if actor.id == feedback.giver_id:
        return True
    if actor.id == feedback.receiver_id:
        return True
    if feedback.team_id and actor.manages(feedback.team_id):
        return True
    if _is_open_team_member(feedback, actor):
        return True
    return False


def check_view(feedback: FeedbackLike, actor: Actor) -> PolicyError | None:
    if can_view(feedback, actor):
        return None
    return permission_denied("You do not have permission to view this feedback.")


def hides_giver(feedback: FeedbackLike, viewer: Actor) -> bool:
    """Anonymous feedbacks hide the giver from everyone but the giver."""
    return bool(feedback.is_anonymous) and viewer.id != feedback.giver_id


def redact_giver(feedback: FeedbackLike, viewer: Actor, giver: dict[str, Any]) -> dict[str, Any]:
    if hides_giver(feedback, viewer):
        return dict(ANONYMOUS_GIVER)
    return giver


# ---------- Edit ----------
def check_edit(feedback: FeedbackLike, actor: Actor) -> PolicyError | None:
    if actor.is_admin:
        return None
    if actor.id != feedback.giver_id and not actor.manages(feedback.team_id):
        return permission_denied("You do not have permission to update this feedback.")
    if feedback.status in LOCKED_STATUSES:
        return invalid_state(f"A feedback in status {feedback.status} can no longer be updated.")
    return None


def can_edit(feedback: FeedbackLike, actor: Actor) -> bool:
    return check_edit(feedback, actor) is None


# ---------- Delete ----------
def check_delete(feedback: FeedbackLike, actor: Actor) -> PolicyError | None:
    if actor.is_admin:
        return None
    if actor.id != feedback.giver_id and not actor.manages(feedback.team_id):
        return permission_denied("You do not have permission to delete this feedback.")
    if feedback.status == STATUS_ARCHIVED:
        return invalid_state("An archived feedback cannot be deleted.")
    if feedback.status == STATUS_APPROVED:
        return permission_denied("Only administrators can delete an approved feedback.")
    return None


def can_delete(feedback: FeedbackLike, actor: Actor) -> bool:
    return check_delete(feedback, actor) is None


# ---------- Comments ----------
def can_comment(feedback: FeedbackLike, actor: Actor) -> bool:
    if actor.is_admin:
        return True
    if _is_participant(feedback, actor):
        return True
    return _is_open_team_member(feedback, actor)


def check_comment(feedback: FeedbackLike, actor: Actor) -> PolicyError | None:
    if can_comment(feedback, actor):
        return None
    return permission_denied("You do not have permission to comment on this feedback.")


def can_modify_comment(comment: CommentLike, actor: Actor) -> bool:
    # Author or admin only; being the feedback's giver/receiver is not enough.
    return actor.is_admin or comment.user_id == actor.id


def check_modify_comment(comment: CommentLike, actor: Actor) -> PolicyError | None:
    if can_modify_comment(comment, actor):
        return None
    return permission_denied("Only the author or an administrator can change this comment.")
