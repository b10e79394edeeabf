from __future__ import annotations

import uuid
from datetime import datetime

from app.feedbackhub.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


def is_valid_id(value: object) -> bool:
    # Only the stored form (lower-case, dashed) counts; braced or urn: forms would miss lookups.
    if not isinstance(value, str):
        return False
    try:
        return str(uuid.UUID(value)) == value
    except ValueError:
        return False


def parse_datetime(value: object) -> datetime | None:
    """Parse an ISO-8601 date or datetime string. Raises ValueError on bad input."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected an ISO date string, got {type(value).__name__}.")
    value = value.strip()
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    # Stored naive UTC, like every other timestamp in the schema.
    if dt.tzinfo is not None:
        dt = dt.replace(tzinfo=None) - dt.utcoffset()
    return dt


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_pagination(args) -> tuple[int, int]:
    try:
        page = max(int(args.get("page") or 1), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get("limit") or DEFAULT_PAGE_SIZE)
    except (TypeError, ValueError):
        limit = DEFAULT_PAGE_SIZE
    return page, min(max(limit, 1), MAX_PAGE_SIZE)


def pagination_meta(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit if limit else 0,
    }


def json_payload(req) -> dict | None:
    """The request body as a dict, or None when it is missing or not a JSON object."""
    body = req.get_json(silent=True)
    return body if isinstance(body, dict) else None
