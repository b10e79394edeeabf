from types import SimpleNamespace

import pytest
from werkzeug.security import generate_password_hash

from app.feedbackhub import create_app
from app.feedbackhub.constants import ROLE_ADMIN, ROLE_HR, ROLE_MANAGER, ROLE_USER
from app.feedbackhub.db import session_scope
from app.feedbackhub.models import Base, Team, TeamMember, User, new_id


@pytest.fixture()
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    ids = {}
    with session_scope(app) as s:
        roles = {"admin": ROLE_ADMIN, "hr": ROLE_HR, "manager": ROLE_MANAGER}
        for key in ("admin", "hr", "manager", "alice"):
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
        s.flush()
        team = Team(id=new_id(), name="Sales", manager_id=ids["manager"], department="VENDAS")
        team.members.append(TeamMember(user_id=ids["manager"], role="LEADER"))
        s.add(team)

    return SimpleNamespace(app=app, client=app.test_client(), ids=ids)


def _auth(env, key: str, password: str = "pw") -> dict:
    r = env.client.post("/api/auth/login", json={"email": f"{key}@example.com", "password": password})
    assert r.status_code == 200, r.json
    return {"Authorization": f"Bearer {r.json['data']['token']}"}


def _new_user(**overrides) -> dict:
    payload = {"name": "Carol Smith", "email": "carol@example.com", "password": "secret1", "role": "user"}
    payload.update(overrides)
    return payload


def test_list_users_requires_permission(env):
    assert env.client.get("/api/users", headers=_auth(env, "alice")).status_code == 403

    r = env.client.get("/api/users?role=manager", headers=_auth(env, "hr"))
    assert r.status_code == 200
    assert [u["email"] for u in r.json["data"]] == ["manager@example.com"]
    assert "password_hash" not in r.json["data"][0]


def test_hr_creates_user_defaults_to_pending_activation(env):
    r = env.client.post("/api/users", json=_new_user(), headers=_auth(env, "hr"))
    assert r.status_code == 201, r.json
    user = r.json["data"]
    assert user["role"] == "USER"
    assert user["status"] == "PENDING_ACTIVATION"

    # Pending users cannot log in yet.
    r = env.client.post("/api/auth/login", json={"email": "carol@example.com", "password": "secret1"})
    assert r.status_code == 403


def test_create_user_validation(env):
    headers = _auth(env, "admin")
    r = env.client.post("/api/users", json=_new_user(email="ALICE@example.com"), headers=headers)
    assert r.status_code == 400
    assert r.json["error"]["message"] == "Email is already in use."

    r = env.client.post("/api/users", json=_new_user(password="123", role="wizard"), headers=headers)
    assert r.status_code == 400
    assert len(r.json["error"]["details"]) == 2

    assert env.client.post("/api/users", json=_new_user(), headers=_auth(env, "manager")).status_code == 403


def test_self_update_is_limited_to_profile_fields(env):
    url = f"/api/users/{env.ids['alice']}"
    headers = _auth(env, "alice")

    r = env.client.put(url, json={"name": "Alice Liddell", "position": "Engineer"}, headers=headers)
    assert r.status_code == 200
    assert r.json["data"]["name"] == "Alice Liddell"

    r = env.client.put(url, json={"role": "ADMIN"}, headers=headers)
    assert r.status_code == 403

    r = env.client.put(f"/api/users/{env.ids['hr']}", json={"name": "Nope"}, headers=headers)
    assert r.status_code == 403

    r = env.client.put(url, json={"role": "team lead", "department": "rh"}, headers=_auth(env, "hr"))
    assert r.status_code == 200
    assert r.json["data"]["role"] == "TEAM_LEAD"
    assert r.json["data"]["department"] == "RH"


def test_delete_user_rules(env):
    headers = _auth(env, "admin")
    r = env.client.delete(f"/api/users/{env.ids['admin']}", headers=headers)
    assert r.status_code == 403

    r = env.client.delete(f"/api/users/{env.ids['manager']}", headers=headers)
    assert r.status_code == 409

    r = env.client.delete(f"/api/users/{env.ids['alice']}", headers=headers)
    assert r.status_code == 200
    assert env.client.get(f"/api/users/{env.ids['alice']}", headers=headers).status_code == 404


def test_change_password(env):
    url = f"/api/users/{env.ids['alice']}/password"
    headers = _auth(env, "alice")

    r = env.client.put(url, json={"current_password": "wrong", "new_password": "better-pw"}, headers=headers)
    assert r.status_code == 400
    r = env.client.put(url, json={"current_password": "pw", "new_password": "short"}, headers=headers)
    assert r.status_code == 400
    r = env.client.put(url, json={"current_password": "pw", "new_password": "better-pw"}, headers=_auth(env, "admin"))
    assert r.status_code == 403

    r = env.client.put(url, json={"current_password": "pw", "new_password": "better-pw"}, headers=headers)
    assert r.status_code == 200
    _auth(env, "alice", password="better-pw")
