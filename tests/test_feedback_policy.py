"""Pure tests for the feedback access and lifecycle rules (no app, no DB)."""
from types import SimpleNamespace

import pytest

from app.feedbackhub.constants import (
    ANONYMOUS_GIVER,
    FEEDBACK_STATUSES,
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_USER,
    STATUS_APPROVED,
    STATUS_ARCHIVED,
    STATUS_DRAFT,
    STATUS_IN_REVIEW,
    STATUS_PENDING,
    STATUS_REJECTED,
)
from app.feedbackhub.directory import Actor
from app.feedbackhub.errors import INVALID_STATE, PERMISSION_DENIED
from app.feedbackhub.modules.feedback import policy

TEAM = "team-1"


def _fb(**kw):
    data = dict(
        giver_id="giver",
        receiver_id="receiver",
        team_id=TEAM,
        status=STATUS_PENDING,
        is_anonymous=False,
        is_confidential=False,
    )
    data.update(kw)
    return SimpleNamespace(**data)


ADMIN = Actor(id="admin", role=ROLE_ADMIN, status="ACTIVE")
GIVER = Actor(id="giver", role=ROLE_USER, status="ACTIVE", team_ids=frozenset({TEAM}))
RECEIVER = Actor(id="receiver", role=ROLE_USER, status="ACTIVE", team_ids=frozenset({TEAM}))
MEMBER = Actor(id="member", role=ROLE_USER, status="ACTIVE", team_ids=frozenset({TEAM}))
MANAGER = Actor(
    id="manager",
    role=ROLE_MANAGER,
    status="ACTIVE",
    team_ids=frozenset({TEAM}),
    managed_team_ids=frozenset({TEAM}),
)
OUTSIDER = Actor(id="outsider", role=ROLE_USER, status="ACTIVE", team_ids=frozenset({"team-2"}))


# ---------- View ----------
@pytest.mark.parametrize("actor", [ADMIN, GIVER, RECEIVER, MEMBER, MANAGER])
def test_open_team_feedback_visible_to_participants_team_and_admin(actor):
    assert policy.can_view(_fb(), actor)


def test_outsider_cannot_view():
    assert not policy.can_view(_fb(), OUTSIDER)
    err = policy.check_view(_fb(), OUTSIDER)
    assert err.kind == PERMISSION_DENIED


def test_confidential_hidden_from_plain_members_but_not_manager():
    fb = _fb(is_confidential=True)
    assert not policy.can_view(fb, MEMBER)
    assert policy.can_view(fb, MANAGER)
    assert policy.can_view(fb, GIVER)
    assert policy.can_view(fb, RECEIVER)
    assert policy.can_view(fb, ADMIN)


def test_feedback_without_team_visible_only_to_participants_and_admin():
    fb = _fb(team_id=None)
    assert policy.can_view(fb, GIVER)
    assert policy.can_view(fb, RECEIVER)
    assert policy.can_view(fb, ADMIN)
    assert not policy.can_view(fb, MEMBER)
    assert not policy.can_view(fb, MANAGER)


def test_admin_views_regardless_of_status_and_flags():
    for status in FEEDBACK_STATUSES:
        fb = _fb(status=status, is_confidential=True, is_anonymous=True, team_id=None)
        assert policy.can_view(fb, ADMIN)


# ---------- Anonymity ----------
def test_anonymous_giver_hidden_from_everyone_but_giver():
    fb = _fb(is_anonymous=True)
    giver = {"id": "giver", "name": "Gina", "email": "g@example.com", "avatar": None}
    assert policy.redact_giver(fb, GIVER, giver) == giver
    for viewer in (RECEIVER, MANAGER, MEMBER, ADMIN):
        assert policy.redact_giver(fb, viewer, giver) == ANONYMOUS_GIVER


def test_named_feedback_shows_giver():
    giver = {"id": "giver", "name": "Gina", "email": "g@example.com", "avatar": None}
    assert policy.redact_giver(_fb(), RECEIVER, giver) == giver
    assert not policy.hides_giver(_fb(), ADMIN)


# ---------- Edit ----------
@pytest.mark.parametrize("status", [STATUS_DRAFT, STATUS_PENDING, STATUS_IN_REVIEW, STATUS_REJECTED])
def test_giver_and_manager_edit_open_statuses(status):
    fb = _fb(status=status)
    assert policy.check_edit(fb, GIVER) is None
    assert policy.check_edit(fb, MANAGER) is None


@pytest.mark.parametrize("status", [STATUS_APPROVED, STATUS_ARCHIVED])
def test_locked_statuses_block_edit_with_invalid_state(status):
    fb = _fb(status=status)
    assert policy.check_edit(fb, GIVER).kind == INVALID_STATE
    assert policy.check_edit(fb, MANAGER).kind == INVALID_STATE
    assert policy.can_edit(fb, ADMIN)


@pytest.mark.parametrize("actor", [RECEIVER, MEMBER, OUTSIDER])
def test_non_giver_non_manager_cannot_edit(actor):
    assert policy.check_edit(_fb(), actor).kind == PERMISSION_DENIED
    # Relationship failure wins over status failure.
    assert policy.check_edit(_fb(status=STATUS_APPROVED), actor).kind == PERMISSION_DENIED


def test_manager_of_other_team_cannot_edit():
    fb = _fb(team_id="team-2")
    assert policy.check_edit(fb, MANAGER).kind == PERMISSION_DENIED


# ---------- Delete ----------
def test_delete_rules_for_giver():
    assert policy.check_delete(_fb(), GIVER) is None
    assert policy.check_delete(_fb(status=STATUS_APPROVED), GIVER).kind == PERMISSION_DENIED
    assert policy.check_delete(_fb(status=STATUS_ARCHIVED), GIVER).kind == INVALID_STATE


def test_delete_rules_for_manager_and_receiver():
    assert policy.can_delete(_fb(status=STATUS_REJECTED), MANAGER)
    assert policy.check_delete(_fb(), RECEIVER).kind == PERMISSION_DENIED
    assert policy.check_delete(_fb(status=STATUS_ARCHIVED), RECEIVER).kind == PERMISSION_DENIED


@pytest.mark.parametrize("status", FEEDBACK_STATUSES)
def test_admin_deletes_any_status(status):
    assert policy.can_delete(_fb(status=status), ADMIN)


# ---------- Comments ----------
def test_comment_rules():
    fb = _fb()
    for actor in (ADMIN, GIVER, RECEIVER, MEMBER, MANAGER):
        assert policy.can_comment(fb, actor)
    assert not policy.can_comment(fb, OUTSIDER)

    confidential = _fb(is_confidential=True)
    assert not policy.can_comment(confidential, MEMBER)
    assert policy.check_comment(confidential, MEMBER).kind == PERMISSION_DENIED
    assert policy.can_comment(confidential, RECEIVER)


def test_comment_modification_is_author_or_admin_only():
    comment = SimpleNamespace(user_id="giver")
    assert policy.can_modify_comment(comment, GIVER)
    assert policy.can_modify_comment(comment, ADMIN)
    assert not policy.can_modify_comment(comment, RECEIVER)
    assert policy.check_modify_comment(comment, MANAGER).kind == PERMISSION_DENIED
