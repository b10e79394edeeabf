"""
Release phase: migrate the database to head, then seed it.

- Refuses to run without DATABASE_URL, and against sqlite when ENV=production.
- Seeding is idempotent and never overwrites an existing admin password.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def release_database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL must be set for the release phase.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite in production; point DATABASE_URL at Postgres.")
    return db_url


def migrate(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def run_release() -> None:
    db_url = release_database_url()

    print("=== FeedbackHub release ===", flush=True)
    print("Running Alembic migrations...", flush=True)
    migrate(db_url)

    print("Seeding admin and competencies...", flush=True)
    from scripts import init_db

    init_db.seed_only(database_url=db_url)
    print("=== release done ===", flush=True)


if __name__ == "__main__":
    run_release()
