from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app.feedbackhub.audit import record_event
from app.feedbackhub.constants import DEPARTMENTS, ROLE_USER, USER_ROLES, USER_STATUSES, normalize_choice
from app.feedbackhub.directory import get_user
from app.feedbackhub.errors import PolicyError, invalid_state, not_found, permission_denied, validation_failed
from app.feedbackhub.models import User
from app.feedbackhub.rbac import user_has_permission
from app.feedbackhub.utils import isoformat

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_MIN_LENGTH = 6
NAME_MIN_LENGTH = 3

# Fields a user may change on their own profile without users.manage.
SELF_EDITABLE_FIELDS = frozenset({"name", "position", "phone", "avatar"})


def user_summary(user: User) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email, "avatar": user.avatar}


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "status": user.status,
        "department": user.department,
        "position": user.position,
        "phone": user.phone,
        "avatar": user.avatar,
        "team_ids": sorted(user.team_ids),
        "managed_team_ids": sorted(user.managed_team_ids),
        "created_at": isoformat(user.created_at),
        "last_login_at": isoformat(user.last_login_at),
    }


def _email_taken(s: Session, email: str, exclude_id: str | None = None) -> bool:
    q = select(User.id).where(func.lower(User.email) == email)
    if exclude_id:
        q = q.where(User.id != exclude_id)
    return s.scalar(q) is not None


def validate_user_payload(payload: dict, *, partial: bool) -> tuple[dict, list[str]]:
    """Validate a user create (partial=False) or update (partial=True) payload."""
    errors: list[str] = []
    data: dict[str, Any] = {}

    def present(key: str) -> bool:
        return not partial or key in payload

    if present("name"):
        name = payload.get("name")
        if not isinstance(name, str) or len(name.strip()) < NAME_MIN_LENGTH:
            errors.append(f"Name must have at least {NAME_MIN_LENGTH} characters.")
        else:
            data["name"] = name.strip()

    if present("email"):
        email = payload.get("email")
        if not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
            errors.append("A valid email is required.")
        else:
            data["email"] = email.strip().lower()

    if not partial:
        password = payload.get("password")
        if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
            errors.append(f"Password must have at least {PASSWORD_MIN_LENGTH} characters.")
        else:
            data["password"] = password

    if "role" in payload or not partial:
        raw = payload.get("role")
        data["role"] = normalize_choice(raw, USER_ROLES) if raw is not None else ROLE_USER
        if not data["role"]:
            errors.append(f"Invalid role. Must be one of: {', '.join(USER_ROLES)}")

    if "status" in payload or not partial:
        raw = payload.get("status")
        data["status"] = normalize_choice(raw, USER_STATUSES) if raw is not None else "PENDING_ACTIVATION"
        if not data["status"]:
            errors.append(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}")

    if "department" in payload:
        raw = payload.get("department")
        data["department"] = normalize_choice(raw, DEPARTMENTS) if raw is not None else None
        if raw is not None and not data["department"]:
            errors.append(f"Invalid department. Must be one of: {', '.join(DEPARTMENTS)}")

    for key in ("position", "phone", "avatar"):
        if key in payload:
            value = payload.get(key)
            if value is not None and not isinstance(value, str):
                errors.append(f"{key} must be a string.")
            else:
                data[key] = (value or "").strip() or None
    return data, errors


def list_users(s: Session, filters: dict[str, Any], *, page: int, limit: int) -> tuple[list[User], int]:
    q = select(User)
    search = (filters.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.where(or_(User.name.ilike(like), User.email.ilike(like)))
    role = normalize_choice(filters.get("role"), USER_ROLES)
    if role:
        q = q.where(User.role == role)
    status = normalize_choice(filters.get("status"), USER_STATUSES)
    if status:
        q = q.where(User.status == status)
    department = normalize_choice(filters.get("department"), DEPARTMENTS)
    if department:
        q = q.where(User.department == department)

    total = s.scalar(select(func.count()).select_from(q.subquery())) or 0
    q = q.order_by(User.name.asc(), User.id.asc()).offset((page - 1) * limit).limit(limit)
    return list(s.scalars(q)), total


def create_user(s: Session, payload: dict, actor: User) -> tuple[User | None, PolicyError | None]:
    data, errors = validate_user_payload(payload, partial=False)
    if errors:
        return None, validation_failed(errors)
    if _email_taken(s, data["email"]):
        return None, validation_failed("Email is already in use.")

    now = datetime.utcnow()
    user = User(
        name=data["name"],
        email=data["email"],
        password_hash=generate_password_hash(data["password"]),
        role=data["role"],
        status=data["status"],
        department=data.get("department"),
        position=data.get("position"),
        phone=data.get("phone"),
        avatar=data.get("avatar"),
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="User",
        entity_id=user.id,
        metadata={"email": user.email, "role": user.role, "status": user.status},
    )
    return user, None


def update_user(s: Session, user_id: str, payload: dict, actor: User) -> tuple[User | None, PolicyError | None]:
    user = get_user(s, user_id)
    if not user:
        return None, not_found("User")

    can_manage = user_has_permission(actor, "users.manage")
    if not can_manage:
        if actor.id != user.id:
            return None, permission_denied("You do not have permission to update this user.")
        forbidden = sorted(k for k in payload if k not in SELF_EDITABLE_FIELDS)
        if forbidden:
            return None, permission_denied(f"You cannot change: {', '.join(forbidden)}.")

    data, errors = validate_user_payload(payload, partial=True)
    if errors:
        return None, validation_failed(errors)
    if "email" in data and _email_taken(s, data["email"], exclude_id=user.id):
        return None, validation_failed("Email is already in use.")

    changes = {}
    for key, value in data.items():
        old = getattr(user, key)
        if old != value:
            changes[key] = {"old": old, "new": value}
            setattr(user, key, value)
    user.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=actor,
        action="user.update",
        entity_type="User",
        entity_id=user.id,
        metadata={"changes": changes},
    )
    return user, None


def delete_user(s: Session, user_id: str, actor: User) -> PolicyError | None:
    user = get_user(s, user_id)
    if not user:
        return not_found("User")
    if user.id == actor.id:
        return permission_denied("You cannot delete your own account.")
    if user.managed_teams:
        return invalid_state("This user manages one or more teams; assign a new manager first.")

    record_event(
        s,
        actor=actor,
        action="user.delete",
        entity_type="User",
        entity_id=user.id,
        metadata={"email": user.email},
    )
    s.delete(user)
    logger.info("User %s deleted by %s", user_id, actor.id)
    return None


def change_password(s: Session, user_id: str, payload: dict, actor: User) -> PolicyError | None:
    if actor.id != user_id:
        return permission_denied("You can only change your own password.")
    current = payload.get("current_password")
    new = payload.get("new_password")
    if not isinstance(current, str) or not isinstance(new, str) or not current or not new:
        return validation_failed("Current and new password are required.")
    if len(new) < PASSWORD_MIN_LENGTH:
        return validation_failed(f"The new password must have at least {PASSWORD_MIN_LENGTH} characters.")
    if not check_password_hash(actor.password_hash, current):
        return validation_failed("Current password is incorrect.")

    actor.password_hash = generate_password_hash(new)
    actor.updated_at = datetime.utcnow()
    record_event(s, actor=actor, action="user.password_change", entity_type="User", entity_id=actor.id)
    return None
