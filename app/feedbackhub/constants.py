"""
Central constants for FeedbackHub.

Every enumerated value is stored upper-case. Clients may send any casing or
use "-"/" " as separators; see `normalize_choice`.
"""
from __future__ import annotations

# User roles
ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_USER = "USER"
ROLE_HR = "HR"
ROLE_TEAM_LEAD = "TEAM_LEAD"
USER_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_USER, ROLE_HR, ROLE_TEAM_LEAD)

# User account statuses; only ACTIVE users can authenticate
USER_ACTIVE = "ACTIVE"
USER_STATUSES = (USER_ACTIVE, "INACTIVE", "SUSPENDED", "PENDING_ACTIVATION")

DEPARTMENTS = ("TI", "RH", "FINANCEIRO", "MARKETING", "VENDAS", "OPERACOES", "DIRETORIA", "OUTRO")

TEAM_STATUSES = ("ACTIVE", "INACTIVE", "ARCHIVED")
TEAM_LEADER = "LEADER"
TEAM_MEMBER = "MEMBER"
TEAM_MEMBER_ROLES = (TEAM_LEADER, TEAM_MEMBER, "SPECIALIST")

# Feedback
FEEDBACK_360 = "FEEDBACK_360"
FEEDBACK_TYPES = ("PERFORMANCE", "BEHAVIOR", "PROJECT", FEEDBACK_360)

PRIORITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")
DEFAULT_PRIORITY = "MEDIUM"

STATUS_DRAFT = "DRAFT"
STATUS_PENDING = "PENDING"
STATUS_IN_REVIEW = "IN_REVIEW"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"
STATUS_ARCHIVED = "ARCHIVED"
FEEDBACK_STATUSES = (
    STATUS_DRAFT,
    STATUS_PENDING,
    STATUS_IN_REVIEW,
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_ARCHIVED,
)
# Content of feedbacks in these statuses is frozen for everyone but admins.
LOCKED_STATUSES = frozenset({STATUS_APPROVED, STATUS_ARCHIVED})

# Canonical rating scale for feedbacks and competency ratings.
RATING_MIN = 1
RATING_MAX = 5

# History actions
HISTORY_CREATED = "FEEDBACK_CREATED"
HISTORY_UPDATED = "FEEDBACK_UPDATED"

ANONYMOUS_GIVER = {"id": "anonymous", "name": "Anonymous", "email": None, "avatar": None}

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

_ALIASES = {
    "360": FEEDBACK_360,
    "FEEDBACK360": FEEDBACK_360,
    "TEAMLEAD": ROLE_TEAM_LEAD,
    "INREVIEW": STATUS_IN_REVIEW,
}


def normalize_choice(value: object, choices: tuple[str, ...]) -> str | None:
    """Map free-form enum input ("in_review", "In Review", "360") onto `choices`, or None."""
    if not isinstance(value, str):
        return None
    key = value.strip().upper().replace("-", "_").replace(" ", "_")
    if not key:
        return None
    key = _ALIASES.get(key, key)
    return key if key in choices else None
