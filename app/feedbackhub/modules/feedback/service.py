"""
Feedback service layer.
Handles feedback CRUD, comments, history and competencies. Every operation
returns `(value, error)`; nothing is committed here, the handler commits once
so the record and its history entries land in one transaction.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session

from app.feedbackhub.audit import record_event
from app.feedbackhub.constants import (
    DEFAULT_PRIORITY,
    FEEDBACK_360,
    FEEDBACK_STATUSES,
    FEEDBACK_TYPES,
    HISTORY_CREATED,
    HISTORY_UPDATED,
    PRIORITIES,
    RATING_MAX,
    RATING_MIN,
    ROLE_ADMIN,
    STATUS_PENDING,
    normalize_choice,
)
from app.feedbackhub.directory import Actor, actor_from_user, get_competencies, get_team, get_user
from app.feedbackhub.errors import PolicyError, not_found, permission_denied, validation_failed
from app.feedbackhub.models import User
from app.feedbackhub.modules.feedback import policy
from app.feedbackhub.modules.feedback.models import (
    Competency,
    Feedback,
    FeedbackComment,
    FeedbackCompetency,
    FeedbackHistory,
)
from app.feedbackhub.utils import is_valid_id, parse_datetime

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "title",
    "description",
    "rating",
    "priority",
    "status",
    "is_anonymous",
    "is_confidential",
    "due_date",
    "completed_at",
)
# Identity of the participants is fixed at creation; updates silently drop these.
IMMUTABLE_FIELDS = frozenset({"giver_id", "receiver_id"})

SORTABLE_FIELDS = ("created_at", "due_date", "rating", "priority")

TITLE_MIN_LENGTH = 3
DESCRIPTION_MIN_LENGTH = 10


# ---------- Validation ----------
def _is_rating(value: object) -> bool:
    # bool is an int subclass; True must not pass as a rating of 1.
    return isinstance(value, int) and not isinstance(value, bool) and RATING_MIN <= value <= RATING_MAX


def _rating_error(label: str) -> str:
    return f"{label} must be an integer between {RATING_MIN} and {RATING_MAX}."


def _validate_title(value: object, errors: list[str]) -> str | None:
    if not isinstance(value, str) or len(value.strip()) < TITLE_MIN_LENGTH:
        errors.append(f"Title must have at least {TITLE_MIN_LENGTH} characters.")
        return None
    return value.strip()


def _validate_description(value: object, errors: list[str]) -> str | None:
    if not isinstance(value, str) or len(value.strip()) < DESCRIPTION_MIN_LENGTH:
        errors.append(f"Description must have at least {DESCRIPTION_MIN_LENGTH} characters.")
        return None
    return value.strip()


def _validate_bool(payload: dict, key: str, errors: list[str], default: bool | None = None) -> bool | None:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        errors.append(f"{key} must be true or false.")
        return None
    return value


def _validate_datetime(payload: dict, key: str, errors: list[str]) -> datetime | None:
    try:
        return parse_datetime(payload.get(key))
    except ValueError:
        errors.append(f"{key} must be an ISO-8601 date.")
        return None


def _validate_competencies(raw: object, errors: list[str]) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        errors.append("competencies must be a list.")
        return []
    out: list[dict] = []
    seen: set[str] = set()
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            errors.append(f"competencies[{i}] must be an object.")
            continue
        cid = item.get("competency_id")
        if not is_valid_id(cid):
            errors.append(f"competencies[{i}].competency_id is not a valid id.")
            continue
        if cid in seen:
            errors.append(f"competencies[{i}] rates the same competency twice.")
            continue
        seen.add(cid)
        if not _is_rating(item.get("rating")):
            errors.append(_rating_error(f"competencies[{i}].rating"))
            continue
        comments = item.get("comments")
        if comments is not None and not isinstance(comments, str):
            errors.append(f"competencies[{i}].comments must be a string.")
            continue
        out.append({"competency_id": cid, "rating": item["rating"], "comments": (comments or "").strip() or None})
    return out


def validate_create_payload(payload: dict) -> tuple[dict, list[str]]:
    """Validate a create payload. Returns (cleaned data, errors). A `status` key is ignored."""
    errors: list[str] = []
    data: dict[str, Any] = {}

    data["type"] = normalize_choice(payload.get("type"), FEEDBACK_TYPES)
    if not data["type"]:
        errors.append(f"Invalid type. Must be one of: {', '.join(FEEDBACK_TYPES)}")

    receiver_id = payload.get("receiver_id")
    if not is_valid_id(receiver_id):
        errors.append("receiver_id is not a valid id.")
    data["receiver_id"] = receiver_id

    team_id = payload.get("team_id")
    if team_id is not None and not is_valid_id(team_id):
        errors.append("team_id is not a valid id.")
    data["team_id"] = team_id or None

    data["title"] = _validate_title(payload.get("title"), errors)
    data["description"] = _validate_description(payload.get("description"), errors)

    rating = payload.get("rating")
    if not _is_rating(rating):
        errors.append(_rating_error("Rating"))
    data["rating"] = rating

    raw_priority = payload.get("priority")
    data["priority"] = normalize_choice(raw_priority, PRIORITIES) if raw_priority is not None else DEFAULT_PRIORITY
    if not data["priority"]:
        errors.append(f"Invalid priority. Must be one of: {', '.join(PRIORITIES)}")

    data["is_anonymous"] = _validate_bool(payload, "is_anonymous", errors, default=False)
    data["is_confidential"] = _validate_bool(payload, "is_confidential", errors, default=False)
    data["due_date"] = _validate_datetime(payload, "due_date", errors)
    data["competencies"] = _validate_competencies(payload.get("competencies"), errors)
    return data, errors


def validate_update_payload(payload: dict) -> tuple[dict, list[str]]:
    """
    Validate an update payload. Only updatable fields that are present are
    returned; giver/receiver ids and unknown keys are dropped without error.
    """
    errors: list[str] = []
    data: dict[str, Any] = {}
    present = [k for k in UPDATABLE_FIELDS if k in payload]
    stripped = sorted(k for k in payload if k not in UPDATABLE_FIELDS)
    if stripped:
        logger.debug("Ignoring non-updatable feedback fields: %s", ", ".join(stripped))

    for key in present:
        value = payload[key]
        if key == "title":
            data[key] = _validate_title(value, errors)
        elif key == "description":
            data[key] = _validate_description(value, errors)
        elif key == "rating":
            if not _is_rating(value):
                errors.append(_rating_error("Rating"))
            data[key] = value
        elif key == "priority":
            data[key] = normalize_choice(value, PRIORITIES)
            if not data[key]:
                errors.append(f"Invalid priority. Must be one of: {', '.join(PRIORITIES)}")
        elif key == "status":
            data[key] = normalize_choice(value, FEEDBACK_STATUSES)
            if not data[key]:
                errors.append(f"Invalid status. Must be one of: {', '.join(FEEDBACK_STATUSES)}")
        elif key in ("is_anonymous", "is_confidential"):
            data[key] = _validate_bool(payload, key, errors)
        else:
            data[key] = _validate_datetime(payload, key, errors)
    return data, errors


def _audit_actor(feedback: Feedback, user: User) -> User | None:
    """The audit log is readable by admins, so it must not name an anonymous giver."""
    if feedback.is_anonymous and feedback.giver_id == user.id:
        return None
    return user


def _history_value(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


# ---------- Create ----------
def create_feedback(s: Session, payload: dict, user: User) -> tuple[Feedback | None, PolicyError | None]:
    """
    Create a feedback given by `user`. All checks run before anything is added
    to the session, so a failure leaves no partial state.
    """
    data, errors = validate_create_payload(payload)
    if errors:
        return None, validation_failed(errors)

    receiver = get_user(s, data["receiver_id"])
    if not receiver:
        return None, not_found("Receiver")

    if data["type"] != FEEDBACK_360 and receiver.id == user.id:
        return None, validation_failed("You cannot give feedback to yourself unless it is a 360 feedback.")

    team = None
    if data["team_id"]:
        team = get_team(s, data["team_id"])
        if not team:
            return None, not_found("Team")
        member_ids = set(team.member_ids)
        if user.id not in member_ids and user.role != ROLE_ADMIN:
            return None, permission_denied("You are not a member of this team.")
        if receiver.id not in member_ids:
            return None, validation_failed("The receiver is not a member of this team.")

    competencies: dict[str, Competency] = {}
    if data["competencies"]:
        wanted = [c["competency_id"] for c in data["competencies"]]
        competencies = get_competencies(s, wanted)
        if len(competencies) != len(wanted):
            return None, not_found("One or more competencies")

    now = datetime.utcnow()
    feedback = Feedback(
        type=data["type"],
        giver_id=user.id,
        receiver_id=receiver.id,
        team_id=team.id if team else None,
        title=data["title"],
        description=data["description"],
        rating=data["rating"],
        priority=data["priority"],
        status=STATUS_PENDING,
        is_anonymous=data["is_anonymous"],
        is_confidential=data["is_confidential"],
        due_date=data["due_date"],
        created_at=now,
        updated_at=now,
    )
    feedback.giver = user
    feedback.receiver = receiver
    feedback.team = team
    for position, item in enumerate(data["competencies"]):
        feedback.competencies.append(
            FeedbackCompetency(
                competency=competencies[item["competency_id"]],
                rating=item["rating"],
                comments=item["comments"],
                position=position,
            )
        )
    feedback.history.append(
        FeedbackHistory(
            user_id=user.id,
            action=HISTORY_CREATED,
            changed_field="status",
            old_value=None,
            new_value=STATUS_PENDING,
            created_at=now,
        )
    )
    s.add(feedback)
    s.flush()

    record_event(
        s,
        actor=_audit_actor(feedback, user),
        action="feedback.create",
        entity_type="Feedback",
        entity_id=feedback.id,
        metadata={"type": feedback.type, "receiver_id": feedback.receiver_id, "team_id": feedback.team_id},
    )
    logger.info("Feedback %s created by %s for %s", feedback.id, user.id, receiver.id)
    return feedback, None


# ---------- Read ----------
def find_feedback(s: Session, feedback_id: str) -> Feedback | None:
    if not is_valid_id(feedback_id):
        return None
    return s.get(Feedback, feedback_id)


def get_feedback(s: Session, feedback_id: str, actor: Actor) -> tuple[Feedback | None, PolicyError | None]:
    feedback = find_feedback(s, feedback_id)
    if not feedback:
        return None, not_found("Feedback")
    err = policy.check_view(feedback, actor)
    if err:
        return None, err
    return feedback, None


def visibility_clause(actor: Actor):
    """SQL form of `policy.can_view`, used to scope list queries for non-admins."""
    conds = [Feedback.giver_id == actor.id, Feedback.receiver_id == actor.id]
    if actor.managed_team_ids:
        conds.append(Feedback.team_id.in_(actor.managed_team_ids))
    if actor.team_ids:
        conds.append(and_(Feedback.team_id.in_(actor.team_ids), Feedback.is_confidential.is_(False)))
    return or_(*conds)


def list_feedbacks(
    s: Session,
    actor: Actor,
    filters: dict[str, Any],
    *,
    page: int,
    limit: int,
) -> tuple[list[Feedback], int]:
    q = select(Feedback)

    feedback_type = normalize_choice(filters.get("type"), FEEDBACK_TYPES)
    if feedback_type:
        q = q.where(Feedback.type == feedback_type)
    status = normalize_choice(filters.get("status"), FEEDBACK_STATUSES)
    if status:
        q = q.where(Feedback.status == status)
    priority = normalize_choice(filters.get("priority"), PRIORITIES)
    if priority:
        q = q.where(Feedback.priority == priority)

    giver_id = (filters.get("giver_id") or "").strip()
    if giver_id:
        q = q.where(Feedback.giver_id == giver_id)
        if giver_id != actor.id:
            # Filtering by giver must not reveal who wrote anonymous feedbacks.
            q = q.where(Feedback.is_anonymous.is_(False))
    receiver_id = (filters.get("receiver_id") or "").strip()
    if receiver_id:
        q = q.where(Feedback.receiver_id == receiver_id)
    team_id = (filters.get("team_id") or "").strip()
    if team_id:
        q = q.where(Feedback.team_id == team_id)

    search = (filters.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.where(or_(Feedback.title.ilike(like), Feedback.description.ilike(like)))

    if not actor.is_admin:
        q = q.where(visibility_clause(actor))

    total = s.scalar(select(func.count()).select_from(q.subquery())) or 0

    sort_by = filters.get("sort_by") if filters.get("sort_by") in SORTABLE_FIELDS else "created_at"
    if sort_by == "priority":
        column = case({p: i for i, p in enumerate(PRIORITIES)}, value=Feedback.priority, else_=-1)
    else:
        column = getattr(Feedback, sort_by)
    ordered = column.asc() if (filters.get("sort_order") or "").lower() == "asc" else column.desc()
    q = q.order_by(ordered, Feedback.id.asc()).offset((page - 1) * limit).limit(limit)

    return list(s.scalars(q)), total


# ---------- Update ----------
def update_feedback(
    s: Session, feedback_id: str, payload: dict, user: User
) -> tuple[Feedback | None, PolicyError | None]:
    feedback = find_feedback(s, feedback_id)
    if not feedback:
        return None, not_found("Feedback")
    err = policy.check_edit(feedback, actor_from_user(user))
    if err:
        return None, err

    data, errors = validate_update_payload(payload)
    if errors:
        return None, validation_failed(errors)

    now = datetime.utcnow()
    changes: dict[str, dict[str, str | None]] = {}
    for key, new_value in data.items():
        old_value = getattr(feedback, key)
        if old_value == new_value:
            continue
        changes[key] = {"old": _history_value(old_value), "new": _history_value(new_value)}
        setattr(feedback, key, new_value)
        feedback.history.append(
            FeedbackHistory(
                user_id=user.id,
                action=HISTORY_UPDATED,
                changed_field=key,
                old_value=changes[key]["old"],
                new_value=changes[key]["new"],
                created_at=now,
            )
        )
    feedback.updated_at = now

    record_event(
        s,
        actor=_audit_actor(feedback, user),
        action="feedback.update",
        entity_type="Feedback",
        entity_id=feedback.id,
        metadata={"changes": changes},
    )
    return feedback, None


# ---------- Delete ----------
def delete_feedback(s: Session, feedback_id: str, user: User) -> PolicyError | None:
    feedback = find_feedback(s, feedback_id)
    if not feedback:
        return not_found("Feedback")
    err = policy.check_delete(feedback, actor_from_user(user))
    if err:
        return err

    record_event(
        s,
        actor=_audit_actor(feedback, user),
        action="feedback.delete",
        entity_type="Feedback",
        entity_id=feedback.id,
        metadata={"status": feedback.status, "title": feedback.title},
    )
    s.delete(feedback)
    logger.info("Feedback %s deleted by %s", feedback_id, user.id)
    return None


# ---------- Comments ----------
def _validate_comment_content(payload: dict) -> tuple[str | None, PolicyError | None]:
    content = payload.get("content")
    if not isinstance(content, str) or not content.strip():
        return None, validation_failed("Comment content cannot be empty.")
    return content.strip(), None


def add_comment(
    s: Session, feedback_id: str, payload: dict, user: User
) -> tuple[FeedbackComment | None, PolicyError | None]:
    feedback = find_feedback(s, feedback_id)
    if not feedback:
        return None, not_found("Feedback")
    err = policy.check_comment(feedback, actor_from_user(user))
    if err:
        return None, err

    content, err = _validate_comment_content(payload)
    if err:
        return None, err
    is_internal = payload.get("is_internal", False)
    if not isinstance(is_internal, bool):
        return None, validation_failed("is_internal must be true or false.")

    now = datetime.utcnow()
    comment = FeedbackComment(
        feedback_id=feedback.id,
        user_id=user.id,
        content=content,
        is_internal=is_internal,
        created_at=now,
        updated_at=now,
    )
    comment.author = user
    feedback.comments.insert(0, comment)
    feedback.updated_at = now
    s.flush()

    record_event(
        s,
        actor=_audit_actor(feedback, user),
        action="comment.create",
        entity_type="FeedbackComment",
        entity_id=comment.id,
        metadata={"feedback_id": feedback.id, "is_internal": is_internal},
    )
    return comment, None


def find_comment(s: Session, comment_id: str) -> FeedbackComment | None:
    if not is_valid_id(comment_id):
        return None
    return s.get(FeedbackComment, comment_id)


def update_comment(
    s: Session, comment_id: str, payload: dict, user: User
) -> tuple[FeedbackComment | None, PolicyError | None]:
    comment = find_comment(s, comment_id)
    if not comment:
        return None, not_found("Comment")
    err = policy.check_modify_comment(comment, actor_from_user(user))
    if err:
        return None, err

    content, err = _validate_comment_content(payload)
    if err:
        return None, err

    now = datetime.utcnow()
    comment.content = content
    comment.updated_at = now
    comment.feedback.updated_at = now

    record_event(
        s,
        actor=_audit_actor(comment.feedback, user),
        action="comment.update",
        entity_type="FeedbackComment",
        entity_id=comment.id,
        metadata={"feedback_id": comment.feedback_id},
    )
    return comment, None


def delete_comment(s: Session, comment_id: str, user: User) -> PolicyError | None:
    comment = find_comment(s, comment_id)
    if not comment:
        return not_found("Comment")
    err = policy.check_modify_comment(comment, actor_from_user(user))
    if err:
        return err

    feedback = comment.feedback
    feedback.comments.remove(comment)
    feedback.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=_audit_actor(feedback, user),
        action="comment.delete",
        entity_type="FeedbackComment",
        entity_id=comment_id,
        metadata={"feedback_id": feedback.id},
    )
    return None


# ---------- Competencies ----------
def list_competencies(s: Session) -> list[Competency]:
    return list(s.scalars(select(Competency).order_by(Competency.name.asc())))


def create_competency(s: Session, payload: dict, user: User) -> tuple[Competency | None, PolicyError | None]:
    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        return None, validation_failed("Name is required.")
    name = name.strip()
    if s.scalar(select(Competency).where(func.lower(Competency.name) == name.lower())):
        return None, validation_failed(f"A competency named {name!r} already exists.")

    competency = Competency(
        name=name,
        description=(payload.get("description") or "").strip() or None,
        category=(payload.get("category") or "").strip() or None,
    )
    s.add(competency)
    s.flush()

    record_event(
        s,
        actor=user,
        action="competency.create",
        entity_type="Competency",
        entity_id=competency.id,
        metadata={"name": competency.name},
    )
    return competency, None
