from __future__ import annotations

from contextlib import contextmanager
from collections.abc import Generator

from flask import Flask, current_app, g
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

ENGINE_KEY = "sqlalchemy_engine"
SESSIONMAKER_KEY = "sqlalchemy_sessionmaker"


def engine_options(db_url: str) -> dict[str, object]:
    opts: dict[str, object] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("postgres"):
        opts.update(pool_recycle=1800, pool_size=5, max_overflow=10, pool_timeout=30)
    return opts


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    # sqlite ignores ON DELETE CASCADE unless the pragma is set per connection.
    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):  # type: ignore[no-redef]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def make_sessionmaker(engine: Engine) -> sessionmaker:
    # expire_on_commit=False: handlers serialize records after committing them.
    return sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)


def init_db(app: Flask) -> None:
    db_url = app.config["DATABASE_URL"]
    engine = create_engine(db_url, **engine_options(db_url))
    if engine.dialect.name == "sqlite":
        _enable_sqlite_foreign_keys(engine)
    app.extensions[ENGINE_KEY] = engine
    app.extensions[SESSIONMAKER_KEY] = make_sessionmaker(engine)
    app.logger.debug("Database engine ready (dialect=%s)", engine.dialect.name)


def db_session(app: Flask | None = None) -> Session:
    """
    Request-scoped session, opened on first use and closed at teardown.
    """
    s: Session | None = getattr(g, "db_session", None)
    if s is None:
        sm = (app or current_app).extensions[SESSIONMAKER_KEY]
        s = g.db_session = sm()
    return s


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = g.pop("db_session", None)
    if s is not None:
        # Uncommitted work from a failed request is discarded here.
        s.close()


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Session for scripts and tests: commits on success, rolls back on error.
    """
    s: Session = app.extensions[SESSIONMAKER_KEY]()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
