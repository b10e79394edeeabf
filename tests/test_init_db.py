import pytest
from sqlalchemy import func, select
from werkzeug.security import check_password_hash

from app.feedbackhub import create_app
from app.feedbackhub.db import session_scope
from app.feedbackhub.models import Base, Competency, User
from scripts.init_db import DEFAULT_COMPETENCIES, seed


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


def test_seed_is_idempotent_and_keeps_password(app):
    with session_scope(app) as s:
        seed(s, admin_email="root@example.com", admin_password="first-pw")
    with session_scope(app) as s:
        seed(s, admin_email="root@example.com", admin_password="second-pw")

    with session_scope(app) as s:
        assert s.scalar(select(func.count()).select_from(Competency)) == len(DEFAULT_COMPETENCIES)
        admin = s.scalar(select(User).where(User.email == "root@example.com"))
        assert admin.role == "ADMIN"
        assert admin.is_active
        assert check_password_hash(admin.password_hash, "first-pw")

    r = app.test_client().post("/api/auth/login", json={"email": "root@example.com", "password": "first-pw"})
    assert r.status_code == 200
