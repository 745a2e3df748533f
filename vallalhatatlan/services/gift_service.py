"""
vallalhatatlan.services.gift_service — Dead-drop gift reveal
==============================================================

A gift is created out of band with a ``secret_token`` (the pickup
location code).  Revealing it is a one-way transition::

    unrevealed ──reveal──▶ revealed      (terminal)
    unrevealed ──time────▶ expired       (terminal, derived from expires_at)

The transition is a single conditional ``UPDATE … WHERE revealed = false
AND not expired``.  Only the request whose update touches the row gets
the token back; every other request re-reads the row to explain why.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vallalhatatlan.database.engine import get_session
from vallalhatatlan.database.models import Gift
from vallalhatatlan.errors import ApiError, GiftFailure

logger = logging.getLogger(__name__)


class GiftRevealError(ApiError):
    """Reveal failure; the response body always carries ``ok: false``."""

    def __init__(self, code: GiftFailure):
        super().__init__(code, body={"ok": False})


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _classify_failure(session: Session, gift_id: str, now: datetime) -> GiftFailure:
    row = session.execute(
        select(Gift.revealed, Gift.expires_at).where(Gift.id == gift_id)
    ).first()
    if row is None:
        return GiftFailure.GIFT_NOT_FOUND
    revealed, expires_at = row
    if expires_at is not None and _as_utc(expires_at) < now:
        return GiftFailure.EXPIRED
    if revealed:
        return GiftFailure.ALREADY_REVEALED
    # Row matched neither branch: the update itself did not apply.
    return GiftFailure.DB_UPDATE_FAILED


def reveal_gift(engine: Engine, gift_id: str, now: datetime | None = None) -> str:
    """Reveal *gift_id* once and return its secret token.

    Raises
    ------
    GiftRevealError
        ``gift_not_found``, ``expired`` (takes precedence over
        ``already_revealed`` once the deadline has passed),
        ``already_revealed`` or ``db_update_failed``.
    """
    now = now or datetime.now(UTC)
    token: str | None = None
    try:
        with get_session(engine) as session:
            result = session.execute(
                update(Gift)
                .where(
                    Gift.id == gift_id,
                    Gift.revealed.is_(False),
                    or_(Gift.expires_at.is_(None), Gift.expires_at >= now),
                )
                .values(revealed=True, reveal_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                token = session.scalar(select(Gift.secret_token).where(Gift.id == gift_id))
            else:
                failure = _classify_failure(session, gift_id, now)
    except SQLAlchemyError as exc:
        logger.exception("Gift %s reveal update failed", gift_id)
        raise GiftRevealError(GiftFailure.DB_UPDATE_FAILED) from exc

    if token is not None:
        logger.info("Gift %s revealed", gift_id)
        return token

    logger.info("Gift %s reveal refused: %s", gift_id, failure.value)
    raise GiftRevealError(failure)
