"""
Database engine + session scoping.

Defaults to SQLite for local runs, Postgres when DATABASE_URL points at one.
There is no module-level engine: callers open a scoped session with
open_session() and it is closed on every exit path.
"""
import importlib
import os
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from appleseed.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


MODEL_MODULES = (
    'appleseed.models.prospect',
    'appleseed.models.daily_limit',
    'appleseed.models.activity_log',
)


def utcnow():
    """Naive UTC timestamp; every stored datetime uses this clock."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_url(url):
    # Hosted Postgres often hands out postgres:// but SQLAlchemy 2.x requires postgresql://
    return url.replace('postgres://', 'postgresql://', 1)


def _ensure_sqlite_dir(url):
    path = url[len('sqlite:///'):]
    if not path or path == ':memory:':
        return
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)


def make_engine(url=None):
    """Create an engine with kwargs suited to the backend."""
    url = normalize_url(url or DATABASE_URL)

    # SQLite needs different engine kwargs than Postgres
    if url.startswith('sqlite'):
        _ensure_sqlite_dir(url)
        return create_engine(url, connect_args={'check_same_thread': False})
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)


def import_models():
    """Import model modules so Base.metadata knows every table."""
    for name in MODEL_MODULES:
        importlib.import_module(name)


def init_db(engine):
    """Create any missing tables. Alembic owns schema changes beyond this."""
    import_models()
    Base.metadata.create_all(engine)


@contextmanager
def open_session(url=None, engine=None):
    """
    Yield a session bound to engine (or a new engine for url).

    Rolls back on error and always closes; an engine created here is disposed.
    """
    owns_engine = engine is None
    if owns_engine:
        engine = make_engine(url)
    session = sessionmaker(bind=engine)()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
        if owns_engine:
            engine.dispose()
