"""
vallalhatatlan.services.presence_service — Reader heartbeats
==============================================================

The reader pings ``POST /api/presence`` while a story is open.  Each ping
upserts one row per user; "online" is never stored, it is derived as
"heartbeat within the last five minutes".  The count is a point-in-time
approximation, not a live subscription.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from vallalhatatlan.constants import PRESENCE_WINDOW
from vallalhatatlan.database.engine import get_session
from vallalhatatlan.database.models import ReaderPresence

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def heartbeat(
    engine: Engine,
    user_id: str,
    email: str | None,
    now: datetime | None = None,
) -> None:
    """Record a heartbeat for *user_id* (``INSERT … ON CONFLICT DO UPDATE``)."""
    now = now or datetime.now(UTC)
    insert = _UPSERT_DIALECTS.get(engine.dialect.name)
    if insert is None:
        raise RuntimeError(f"presence upsert not supported on {engine.dialect.name}")

    stmt = insert(ReaderPresence).values(user_id=user_id, email=email, last_heartbeat=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=[ReaderPresence.user_id],
        set_={"email": stmt.excluded.email, "last_heartbeat": stmt.excluded.last_heartbeat},
    )
    with get_session(engine) as session:
        session.execute(stmt)


def count_online(
    session: Session,
    now: datetime | None = None,
    window: timedelta = PRESENCE_WINDOW,
) -> int:
    """Number of readers whose last heartbeat falls inside *window*."""
    cutoff = (now or datetime.now(UTC)) - window
    return session.scalar(
        select(func.count())
        .select_from(ReaderPresence)
        .where(ReaderPresence.last_heartbeat >= cutoff)
    ) or 0
