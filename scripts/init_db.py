import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session
from contextlib import contextmanager

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.feedbackhub.constants import ROLE_ADMIN, USER_ACTIVE
from app.feedbackhub.db import make_sessionmaker
from app.feedbackhub.models import Competency, User

DEFAULT_COMPETENCIES = (
    ("Communication", "Shares information clearly and listens actively.", "SOFT_SKILLS"),
    ("Teamwork", "Collaborates and supports colleagues.", "SOFT_SKILLS"),
    ("Leadership", "Guides, motivates and develops others.", "LEADERSHIP"),
    ("Problem Solving", "Analyses issues and proposes effective solutions.", "TECHNICAL"),
    ("Technical Knowledge", "Masters the tools and knowledge the role requires.", "TECHNICAL"),
    ("Proactivity", "Takes initiative and anticipates needs.", "BEHAVIOR"),
)


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    s: Session = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def seed(s: Session, *, admin_email: str, admin_password: str) -> User:
    """
    Ensure the admin user and the default competencies exist.
    Does NOT overwrite an existing admin user's password.
    """
    for name, description, category in DEFAULT_COMPETENCIES:
        exists = s.scalar(select(Competency.id).where(func.lower(Competency.name) == name.lower()))
        if not exists:
            s.add(Competency(name=name, description=description, category=category))

    user = s.scalar(select(User).where(func.lower(User.email) == admin_email))
    if not user:
        user = User(
            name="Administrator",
            email=admin_email,
            password_hash=generate_password_hash(admin_password),
            role=ROLE_ADMIN,
            status=USER_ACTIVE,
        )
        s.add(user)
    elif user.role != ROLE_ADMIN:
        user.role = ROLE_ADMIN
    return user


def seed_only(*, database_url: str | None = None) -> None:
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@feedbackhub.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///feedbackhub.db").strip()

    # Use direct engine/session so this can run in release without importing app.wsgi (avoids recursion).
    with _session_scope(db_url) as s:
        seed(s, admin_email=admin_email, admin_password=admin_password)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
