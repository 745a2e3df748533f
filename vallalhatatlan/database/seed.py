"""
vallalhatatlan.database.seed — System Control Seeder
======================================================

Idempotent — inserts the ``system_control`` singleton in ``SAFE`` mode only
when it doesn't already exist.  A mode set by an admin is never
overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine

from vallalhatatlan.database.engine import get_session
from vallalhatatlan.database.models import SYSTEM_CONTROL_ID, SystemControl, SystemMode

logger = logging.getLogger(__name__)


def seed_system_control(engine: Engine) -> bool:
    """Insert the control row if missing.  Returns True if a row was created."""
    with get_session(engine) as session:
        if session.get(SystemControl, SYSTEM_CONTROL_ID) is not None:
            return False
        session.add(SystemControl(
            id=SYSTEM_CONTROL_ID,
            mode=SystemMode.SAFE,
            updated_by="seed",
        ))

    logger.info("Seeded system_control singleton (mode=SAFE)")
    return True
