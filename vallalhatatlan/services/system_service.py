"""
vallalhatatlan.services.system_service — Global SAFE / READ_ONLY switch
=========================================================================

One row (``system_control.id = 1``) decides whether user-facing writes are
accepted.  The mode is read fresh for every request that needs it; there
is no process-level cache, so flipping the switch takes effect on the next
request and tests can set it per call.

When the row is missing or cannot be read the guard **fails closed**: the
site degrades to read-only rather than accepting writes it cannot vouch
for.  Admins can still write in ``READ_ONLY``, which is how they repair
the row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vallalhatatlan.database.engine import get_session
from vallalhatatlan.database.models import SYSTEM_CONTROL_ID, SystemControl, SystemMode

logger = logging.getLogger(__name__)

READ_ONLY_MESSAGE = (
    "System is in read-only mode. Write operations are temporarily disabled."
)


@dataclass(frozen=True, slots=True)
class SystemStatus:
    mode: SystemMode
    updated_at: datetime | None
    updated_by: str | None

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "updatedBy": self.updated_by,
        }


def get_system_status(session: Session) -> SystemStatus | None:
    """Return the control row as a :class:`SystemStatus`, or ``None``."""
    row = session.get(SystemControl, SYSTEM_CONTROL_ID)
    if row is None:
        return None
    return SystemStatus(mode=SystemMode(row.mode), updated_at=row.updated_at, updated_by=row.updated_by)


def read_system_mode(session: Session) -> SystemMode:
    """Current mode, failing closed to ``READ_ONLY`` on a missing/unreadable row."""
    try:
        status = get_system_status(session)
    except (SQLAlchemyError, ValueError):
        logger.exception("System mode unreadable — treating as READ_ONLY")
        return SystemMode.READ_ONLY
    if status is None:
        logger.error("system_control row missing — treating as READ_ONLY")
        return SystemMode.READ_ONLY
    return status.mode


def is_write_allowed(mode: SystemMode, *, is_admin: bool) -> bool:
    return mode is SystemMode.SAFE or is_admin


def set_system_mode(
    engine: Engine,
    mode: SystemMode,
    *,
    actor: str,
    now: datetime | None = None,
) -> SystemStatus:
    """Write the mode (creating the singleton if needed) and return it."""
    now = now or datetime.now(UTC)
    with get_session(engine) as session:
        row = session.get(SystemControl, SYSTEM_CONTROL_ID)
        before = row.mode if row is not None else None
        if row is None:
            row = SystemControl(id=SYSTEM_CONTROL_ID)
            session.add(row)
        row.mode = mode
        row.updated_at = now
        row.updated_by = actor

    logger.warning("System mode changed %s → %s by %s", before, mode.value, actor)
    return SystemStatus(mode=mode, updated_at=now, updated_by=actor)
