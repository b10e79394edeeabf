from datetime import datetime

import pytest

from app.feedbackhub.constants import FEEDBACK_STATUSES, FEEDBACK_TYPES, USER_ROLES, normalize_choice
from app.feedbackhub.errors import VALIDATION_FAILED, validation_failed
from app.feedbackhub.utils import is_valid_id, pagination_meta, parse_datetime, parse_pagination


@pytest.mark.parametrize(
    "raw,choices,expected",
    [
        ("in_review", FEEDBACK_STATUSES, "IN_REVIEW"),
        ("In Review", FEEDBACK_STATUSES, "IN_REVIEW"),
        ("approved", FEEDBACK_STATUSES, "APPROVED"),
        ("360", FEEDBACK_TYPES, "FEEDBACK_360"),
        ("feedback-360", FEEDBACK_TYPES, "FEEDBACK_360"),
        ("team-lead", USER_ROLES, "TEAM_LEAD"),
        ("nope", FEEDBACK_STATUSES, None),
        ("", FEEDBACK_STATUSES, None),
        (3, FEEDBACK_STATUSES, None),
    ],
)
def test_normalize_choice(raw, choices, expected):
    assert normalize_choice(raw, choices) == expected


def test_parse_datetime_normalizes_to_naive_utc():
    assert parse_datetime("2026-03-01T12:00:00Z") == datetime(2026, 3, 1, 12, 0)
    assert parse_datetime("2026-03-01T12:00:00+02:00") == datetime(2026, 3, 1, 10, 0)
    assert parse_datetime("2026-03-01") == datetime(2026, 3, 1)
    assert parse_datetime(None) is None
    with pytest.raises(ValueError):
        parse_datetime("not a date")


def test_is_valid_id():
    assert is_valid_id("6f1c1f0e-3a1b-4a55-9c2e-0d6c2f6b8f11")
    assert not is_valid_id("123")
    assert not is_valid_id(None)
    for variant in (
        "6F1C1F0E-3A1B-4A55-9C2E-0D6C2F6B8F11",
        "{6f1c1f0e-3a1b-4a55-9c2e-0d6c2f6b8f11}",
        "urn:uuid:6f1c1f0e-3a1b-4a55-9c2e-0d6c2f6b8f11",
        "6f1c1f0e3a1b4a559c2e0d6c2f6b8f11",
    ):
        assert not is_valid_id(variant)


def test_pagination_is_clamped():
    assert parse_pagination({}) == (1, 10)
    assert parse_pagination({"page": "0", "limit": "1000"}) == (1, 100)
    assert parse_pagination({"page": "x", "limit": "y"}) == (1, 10)
    assert pagination_meta(21, 1, 10) == {"total": 21, "page": 1, "limit": 10, "pages": 3}


def test_validation_failed_keeps_every_message():
    err = validation_failed(["a", "b"])
    assert err.kind == VALIDATION_FAILED
    assert err.status_code == 400
    assert err.to_dict()["details"] == ["a", "b"]
