"""
vallalhatatlan.services.user_service — ``users`` rows and reader profiles
===========================================================================
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session

from vallalhatatlan.constants import NICKNAME_MAX_CHARS
from vallalhatatlan.database.engine import get_session
from vallalhatatlan.database.models import ReaderUser
from vallalhatatlan.errors import AccessFailure, ApiError, ProfileFailure
from vallalhatatlan.services.identity_service import Identity

logger = logging.getLogger(__name__)


def upsert_user_by_email(engine: Engine, email: str) -> str:
    """Return the id of the ``users`` row for *email*, inserting it if new."""
    with get_session(engine) as session:
        user_id = session.scalar(select(ReaderUser.id).where(ReaderUser.email == email))
        if user_id is not None:
            return user_id
        user = ReaderUser(email=email)
        session.add(user)
        session.flush()
        logger.info("Created reader user %s", user.id)
        return user.id


def clean_nickname(raw: str | None) -> str:
    nickname = (raw or "").strip()
    if not 1 <= len(nickname) <= NICKNAME_MAX_CHARS:
        raise ApiError(ProfileFailure.INVALID_NICKNAME, body={"ok": False})
    return nickname


def update_nickname(engine: Engine, identity: Identity, raw_nickname: str | None) -> dict:
    """Set the caller's nickname, creating their ``users`` row if needed.

    An allow-list row for the same email under a different id (an older
    magic-link signup) is replaced by the provider's id.
    """
    nickname = clean_nickname(raw_nickname)
    if not identity.email:
        raise ApiError(AccessFailure.NO_EMAIL, status_code=400, body={"ok": False})

    with get_session(engine) as session:
        user = session.get(ReaderUser, identity.id)
        if user is None:
            session.execute(
                delete(ReaderUser).where(
                    ReaderUser.email == identity.email,
                    ReaderUser.id != identity.id,
                )
            )
            user = ReaderUser(id=identity.id, email=identity.email)
            session.add(user)
            logger.info("Inserted profile row for %s", identity.id)
        user.nickname = nickname
        session.flush()
        return {"id": user.id, "email": user.email, "nickname": user.nickname}


def get_public_profile(session: Session, user_id: str | None) -> dict:
    if not user_id:
        raise ApiError(ProfileFailure.MISSING_USER_ID, body={"ok": False})
    row = session.execute(
        select(ReaderUser.id, ReaderUser.nickname).where(ReaderUser.id == user_id)
    ).first()
    if row is None:
        raise ApiError(ProfileFailure.USER_NOT_FOUND, body={"ok": False})
    return {"id": row.id, "nickname": row.nickname}
