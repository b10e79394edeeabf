from types import SimpleNamespace

import pytest
from werkzeug.security import generate_password_hash

from app.feedbackhub import create_app
from app.feedbackhub.constants import ROLE_ADMIN, ROLE_MANAGER, ROLE_USER
from app.feedbackhub.db import session_scope
from app.feedbackhub.models import Base, User, new_id

MISSING_ID = "00000000-0000-4000-8000-000000000000"


@pytest.fixture()
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    ids = {}
    with session_scope(app) as s:
        roles = {"admin": ROLE_ADMIN, "manager": ROLE_MANAGER, "manager2": ROLE_MANAGER}
        for key in ("admin", "manager", "manager2", "alice", "bob"):
            u = User(
                id=new_id(),
                name=key.title(),
                email=f"{key}@example.com",
                password_hash=generate_password_hash("pw"),
                role=roles.get(key, ROLE_USER),
                status="ACTIVE",
            )
            s.add(u)
            ids[key] = u.id

    return SimpleNamespace(app=app, client=app.test_client(), ids=ids)


def _auth(env, key: str) -> dict:
    r = env.client.post("/api/auth/login", json={"email": f"{key}@example.com", "password": "pw"})
    return {"Authorization": f"Bearer {r.json['data']['token']}"}


def _create_team(env, key: str = "manager", **overrides):
    payload = {
        "name": "Data Platform",
        "description": "Pipelines and warehouse",
        "manager_id": env.ids["manager"],
        "department": "ti",
        "member_ids": [env.ids["alice"]],
    }
    payload.update(overrides)
    return env.client.post("/api/teams", json=payload, headers=_auth(env, key))


def test_manager_creates_team_and_leads_it(env):
    r = _create_team(env)
    assert r.status_code == 201, r.json
    team = r.json["data"]
    assert team["department"] == "TI"
    assert team["manager"]["id"] == env.ids["manager"]
    roles = {m["id"]: m["role"] for m in team["members"]}
    assert roles == {env.ids["manager"]: "LEADER", env.ids["alice"]: "MEMBER"}

    me = env.client.get("/api/auth/me", headers=_auth(env, "alice")).json["data"]
    assert me["team_ids"] == [team["id"]]


def test_plain_user_cannot_create_team(env):
    r = _create_team(env, key="alice")
    assert r.status_code == 403


def test_create_team_with_unknown_people(env):
    assert _create_team(env, manager_id=MISSING_ID).status_code == 404
    assert _create_team(env, member_ids=[MISSING_ID]).status_code == 404
    r = _create_team(env, name="x")
    assert r.status_code == 400


def test_update_team_requires_manager_or_admin(env):
    team = _create_team(env).json["data"]
    url = f"/api/teams/{team['id']}"

    assert env.client.put(url, json={"name": "Hijack"}, headers=_auth(env, "manager2")).status_code == 403
    assert env.client.put(url, json={"name": "Hijack"}, headers=_auth(env, "alice")).status_code == 403

    r = env.client.put(url, json={"member_ids": [env.ids["bob"]]}, headers=_auth(env, "manager"))
    assert r.status_code == 200
    assert {m["id"] for m in r.json["data"]["members"]} == {env.ids["manager"], env.ids["bob"]}

    r = env.client.put(url, json={"manager_id": env.ids["manager2"]}, headers=_auth(env, "admin"))
    assert r.status_code == 200
    roles = {m["id"]: m["role"] for m in r.json["data"]["members"]}
    assert roles[env.ids["manager2"]] == "LEADER"
    assert roles[env.ids["manager"]] == "MEMBER"


def test_specialist_role_survives_manager_and_member_changes(env):
    team = _create_team(env).json["data"]
    url = f"/api/teams/{team['id']}"
    r = env.client.post(
        f"{url}/members", json={"user_id": env.ids["bob"], "role": "specialist"}, headers=_auth(env, "manager")
    )
    assert r.status_code == 201

    r = env.client.put(url, json={"manager_id": env.ids["manager2"]}, headers=_auth(env, "admin"))
    roles = {m["id"]: m["role"] for m in r.json["data"]["members"]}
    assert roles == {
        env.ids["manager2"]: "LEADER",
        env.ids["manager"]: "MEMBER",
        env.ids["alice"]: "MEMBER",
        env.ids["bob"]: "SPECIALIST",
    }

    r = env.client.put(url, json={"member_ids": [env.ids["bob"]]}, headers=_auth(env, "admin"))
    roles = {m["id"]: m["role"] for m in r.json["data"]["members"]}
    assert roles == {env.ids["manager2"]: "LEADER", env.ids["bob"]: "SPECIALIST"}


def test_add_and_remove_members(env):
    team = _create_team(env).json["data"]
    url = f"/api/teams/{team['id']}/members"
    headers = _auth(env, "manager")

    r = env.client.post(url, json={"user_id": env.ids["bob"]}, headers=headers)
    assert r.status_code == 201
    assert env.ids["bob"] in {m["id"] for m in r.json["data"]["members"]}

    r = env.client.post(url, json={"user_id": env.ids["bob"]}, headers=headers)
    assert r.status_code == 400

    r = env.client.delete(url, json={"user_id": env.ids["manager"]}, headers=headers)
    assert r.status_code == 409
    assert r.json["error"]["kind"] == "INVALID_STATE"

    r = env.client.delete(url, json={"user_id": env.ids["bob"]}, headers=headers)
    assert r.status_code == 200
    assert env.ids["bob"] not in {m["id"] for m in r.json["data"]["members"]}

    r = env.client.delete(url, json={"user_id": env.ids["bob"]}, headers=headers)
    assert r.status_code == 404


def test_list_and_delete_team(env):
    team = _create_team(env).json["data"]
    _create_team(env, name="Growth", department="MARKETING", manager_id=env.ids["manager2"], key="manager2")

    r = env.client.get("/api/teams?department=marketing", headers=_auth(env, "alice"))
    assert [t["name"] for t in r.json["data"]] == ["Growth"]
    assert r.json["pagination"]["total"] == 1

    assert env.client.delete(f"/api/teams/{team['id']}", headers=_auth(env, "manager2")).status_code == 403
    assert env.client.delete(f"/api/teams/{team['id']}", headers=_auth(env, "admin")).status_code == 200
    assert env.client.get(f"/api/teams/{team['id']}", headers=_auth(env, "admin")).status_code == 404
