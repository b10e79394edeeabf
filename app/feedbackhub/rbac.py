from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, g

from app.feedbackhub.constants import ROLE_ADMIN, ROLE_HR, ROLE_MANAGER, ROLE_TEAM_LEAD, ROLE_USER
from app.feedbackhub.errors import error_response, not_authenticated, permission_denied
from app.feedbackhub.models import User

# Coarse, role-level permissions. Per-record rules (who may see or change a
# given feedback or team) live in the module policies.
ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_ADMIN: frozenset(
        {
            "users.view",
            "users.manage",
            "teams.create",
            "competencies.manage",
            "reports.view",
            "audit.view",
        }
    ),
    ROLE_HR: frozenset({"users.view", "users.manage", "competencies.manage", "reports.view"}),
    ROLE_MANAGER: frozenset({"teams.create", "reports.view"}),
    ROLE_TEAM_LEAD: frozenset(),
    ROLE_USER: frozenset(),
}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    return permission_key in ROLE_PERMISSIONS.get(user.role, frozenset())


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return error_response(not_authenticated())
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                return error_response(not_authenticated())
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                current_app.logger.warning(
                    "Forbidden: missing_permission=%s user=%s request_id=%s",
                    permission_key,
                    user.id,
                    getattr(g, "request_id", None),
                )
                return error_response(permission_denied(f"Missing permission: {permission_key}."))
            return fn(*args, **kwargs)

        return wrapped

    return decorator
