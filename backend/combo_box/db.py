# backend/combo_box/db.py
from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from dotenv import load_dotenv
from flask import g, has_app_context
from sqlalchemy import create_engine, inspect as sa_inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from .schema import get_mapper

log = logging.getLogger(__name__)

# Module-level singletons
_ENGINE: Optional[Engine] = None
_SESSION_FACTORY: Optional[sessionmaker] = None
_SESSION_LOCAL: Optional[scoped_session] = None
_INIT_LOCK = threading.Lock()

REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_ENV = REPO_ROOT / "backend" / ".env"
ROOT_ENV = REPO_ROOT / ".env"

DEFAULT_DATABASE_URL = "sqlite:///combo_box.db"


def _load_env_once() -> None:
    """Load env files if present, never overriding variables already set."""
    if BACKEND_ENV.exists():
        log.debug("loading backend/.env")
        load_dotenv(BACKEND_ENV, override=False)
    if ROOT_ENV.exists():
        log.debug("loading root/.env")
        load_dotenv(ROOT_ENV, override=False)


def get_database_url() -> str:
    _load_env_once()
    return os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL


def _engine_options(db_url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        "echo": bool(int(os.getenv("SQLALCHEMY_ECHO", "0"))),
        "pool_pre_ping": bool(int(os.getenv("SQLALCHEMY_POOL_PRE_PING", "1"))),
    }
    # sqlite pools do not take sizing arguments
    if not db_url.startswith("sqlite"):
        options["pool_size"] = int(os.getenv("SQLALCHEMY_POOL_SIZE", "5"))
        options["max_overflow"] = int(os.getenv("SQLALCHEMY_MAX_OVERFLOW", "10"))
    return options


def configure_engine(engine: Engine) -> Engine:
    """Install an externally created engine (tests, embedding applications)."""
    global _ENGINE, _SESSION_FACTORY, _SESSION_LOCAL
    with _INIT_LOCK:
        _ENGINE = engine
        _SESSION_FACTORY = sessionmaker(bind=engine, future=True)
        _SESSION_LOCAL = scoped_session(_SESSION_FACTORY)
    return engine


def get_engine() -> Engine:
    """
    Return a process-wide SQLAlchemy Engine (with pooling).
    Creates it on first use, thread-safe.
    """
    global _ENGINE, _SESSION_FACTORY, _SESSION_LOCAL
    if _ENGINE is not None:
        return _ENGINE

    with _INIT_LOCK:
        if _ENGINE is not None:
            return _ENGINE
        db_url = get_database_url()
        options = _engine_options(db_url)
        log.info("Creating DB engine url=%s options=%s", db_url, options)
        _ENGINE = create_engine(db_url, future=True, **options)
        _SESSION_FACTORY = sessionmaker(bind=_ENGINE, future=True)
        _SESSION_LOCAL = scoped_session(_SESSION_FACTORY)
        return _ENGINE


def get_or_create_session() -> Session:
    """
    Return the current request's Session if it exists, otherwise
    create one from the scoped_session and attach it to g.
    """
    if _SESSION_LOCAL is None:
        get_engine()

    s = getattr(g, "db", None)
    if s is None:
        s = _SESSION_LOCAL()
        g.db = s
    return s


@contextmanager
def session_scope() -> Iterator[Session]:
    """Yield a database session and guarantee the associated connection is released."""

    # Inside Flask the request-scoped session is reused; elsewhere a temporary
    # session is opened and closed around the block.
    created_here = False

    if has_app_context():
        session = get_or_create_session()
    else:
        get_engine()
        session = _SESSION_FACTORY()
        created_here = True

    try:
        yield session
    except Exception:
        if session.in_transaction():
            session.rollback()
        raise
    finally:
        if created_here:
            session.close()


def table_exists(model: Any, engine: Optional[Engine] = None) -> bool:
    """True when the table behind ``model`` exists in the database."""
    engine = engine or get_engine()
    table = get_mapper(model).local_table
    try:
        return sa_inspect(engine).has_table(table.name, schema=table.schema)
    except Exception:
        log.exception("Could not check whether table %s exists", table.name)
        return False


def ping_db() -> bool:
    """Quick health check."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("select 1"))
        return True
    except Exception:
        log.exception("DB ping failed")
        return False


def dispose_engine() -> None:
    """Close all pooled connections (useful in tests or graceful shutdown)."""
    global _ENGINE, _SESSION_FACTORY, _SESSION_LOCAL

    if _SESSION_LOCAL:
        _SESSION_LOCAL.remove()
        _SESSION_LOCAL = None

    if _ENGINE is not None:
        _ENGINE.dispose()
        _ENGINE = None

    _SESSION_FACTORY = None


def db_cleanup(_exc) -> None:
    try:
        g.pop("db", None)
    except RuntimeError:
        # Outside an application context there is no ``g`` to mutate.
        pass

    if _SESSION_LOCAL:
        _SESSION_LOCAL.remove()
