import pytest
from werkzeug.security import generate_password_hash

from app.feedbackhub import create_app
from app.feedbackhub.db import session_scope
from app.feedbackhub.models import Base, Team, TeamMember, User, new_id


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("LOGIN_RATE_LIMIT", "3")

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        admin = User(
            id=new_id(),
            name="Admin",
            email="admin@example.com",
            password_hash=generate_password_hash("pw"),
            role="ADMIN",
            status="ACTIVE",
        )
        ana = User(
            id=new_id(),
            name="Ana",
            email="ana@example.com",
            password_hash=generate_password_hash("pw"),
            role="USER",
            status="ACTIVE",
        )
        suspended = User(
            id=new_id(),
            name="Sam",
            email="sam@example.com",
            password_hash=generate_password_hash("pw"),
            role="USER",
            status="SUSPENDED",
        )
        s.add_all([admin, ana, suspended])
        s.flush()
        team = Team(id=new_id(), name="Core", manager_id=admin.id, department="TI")
        team.members.append(TeamMember(user_id=admin.id, role="LEADER"))
        team.members.append(TeamMember(user_id=ana.id, role="MEMBER"))
        s.add(team)

    return app.test_client()


def _ana_id(client) -> str:
    r = client.post("/api/auth/login", json={"email": "ana@example.com", "password": "pw"})
    return r.json["data"]["user"]["id"]


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert r.json["db"] is True
    assert client.get("/healthz").status_code == 200


def test_unknown_route_returns_json_404(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert r.json["error"]["kind"] == "NOT_FOUND"


def test_login_token_and_me(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401

    r = client.post("/api/auth/login", json={"email": "ADMIN@example.com", "password": "pw"})
    assert r.status_code == 200
    token = r.json["data"]["token"]
    assert r.json["data"]["user"]["role"] == "ADMIN"

    fresh = client.application.test_client()
    r = fresh.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json["data"]["email"] == "admin@example.com"
    assert r.json["data"]["last_login_at"] is not None

    r = fresh.get("/api/auth/me", headers={"Authorization": "Bearer forged.token"})
    assert r.status_code == 401


def test_bad_credentials_and_inactive_accounts(client):
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "nope"})
    assert r.status_code == 401
    assert r.json["error"]["kind"] == "NOT_AUTHENTICATED"

    r = client.post("/api/auth/login", json={"email": "sam@example.com", "password": "pw"})
    assert r.status_code == 403


def test_login_rate_limit(client):
    for _ in range(3):
        r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "nope"})
        assert r.status_code == 401
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 429
    assert r.json["error"]["kind"] == "RATE_LIMITED"


def test_cookie_session_requires_csrf_for_writes(client):
    ana_id = _ana_id(client)
    payload = {"name": "Ana Souza"}

    r = client.put(f"/api/users/{ana_id}", json=payload)
    assert r.status_code == 403
    assert "CSRF" in r.json["error"]["message"]

    csrf = client.get("/api/auth/csrf").json["data"]["csrf_token"]
    r = client.put(f"/api/users/{ana_id}", json=payload, headers={"X-CSRF-Token": csrf})
    assert r.status_code == 200
    assert r.json["data"]["name"] == "Ana Souza"

    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/auth/me").status_code == 401


def test_audit_log_is_admin_only(client):
    _ana_id(client)
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "pw"})
    admin_headers = {"Authorization": f"Bearer {r.json['data']['token']}"}
    r = client.post("/api/auth/login", json={"email": "ana@example.com", "password": "pw"})
    ana_headers = {"Authorization": f"Bearer {r.json['data']['token']}"}

    assert client.get("/api/audit", headers=ana_headers).status_code == 403

    r = client.get("/api/audit?action=auth.login", headers=admin_headers)
    assert r.status_code == 200
    emails = [ev["actor_user_email"] for ev in r.json["data"]]
    assert emails.count("ana@example.com") == 2
    assert "admin@example.com" in emails

    r = client.get("/api/audit?actor_email=admin", headers=admin_headers)
    assert {ev["actor_user_email"] for ev in r.json["data"]} == {"admin@example.com"}
