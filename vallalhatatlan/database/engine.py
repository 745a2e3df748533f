"""
vallalhatatlan.database.engine — Database Connection & Async Helper
=====================================================================

The reader data lives in the managed Postgres behind Supabase.  We talk to
it directly with SQLAlchemy + psycopg2, which is **synchronous**.  FastAPI
runs plain ``def`` handlers on its thread pool, so those can use a session
directly; ``async def`` handlers (the audio proxy, magic-link mail) go
through :func:`run_db`, which ships the sync function to a worker thread
via :func:`asyncio.to_thread`.

Usage::

    from vallalhatatlan.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async handler:
    user = await run_db(upsert_user_by_email, engine, email)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from vallalhatatlan.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

POSTGRES_POOL = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 10,
    "pool_pre_ping": True,
    "pool_recycle": 1800,
}


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build the :class:`Engine` for *url*, defaulting to ``DATABASE_URL``.

    Postgres (the Supabase pooler) gets a bounded pool that pings and
    recycles connections, since the pooler drops idle ones.  SQLite URLs,
    used for local runs, get thread-shareable connections and the
    dialect's default pool.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set the Supabase Postgres URL."
        )

    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(url, **POSTGRES_POOL)
    logger.info("Database engine ready (%s, host=%s)", engine.dialect.name, engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables and seed the system control singleton.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from vallalhatatlan.database.seed import seed_system_control

    seed_system_control(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """The one way services open a unit of work.

    Commits when the block exits normally and rolls back when it raises
    (the exception propagates).  Objects stay loaded after the commit, so
    a service may return values read inside the block.

    Usage::

        with get_session(engine) as session:
            session.add(Gift(id="g1", secret_token="…"))
    """
    with Session(engine, expire_on_commit=False) as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a sync service call (``func(*args, **kwargs)``) from an
    ``async def`` handler without blocking the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)
