"""
vallalhatatlan.services.entitlement_service — Reader allow-list checks
========================================================================

A reader may open the gated stories iff their email has a row in
``users``.  The lookup is exact first, then case-insensitive, and never
cached: revoking access is a ``DELETE`` away.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from vallalhatatlan.database.models import ReaderUser

logger = logging.getLogger(__name__)


def normalize_email(email: str | None, *, strip_plus: bool = False) -> str:
    """Trim and lower-case *email*.

    With ``strip_plus`` everything from the first ``+`` on is dropped, which
    collapses plus-addressed variants onto one allow-list entry.  Applying
    the function twice gives the same result as applying it once.
    """
    normalized = (email or "").strip().lower()
    if strip_plus:
        normalized = normalized.split("+", 1)[0]
    return normalized


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def has_reader_access(session: Session, email: str | None) -> bool:
    """Return True if *email* matches an allow-list row.

    An empty email is denied without touching the database.
    """
    if not email:
        return False

    exact = session.scalars(
        select(ReaderUser.id).where(ReaderUser.email == email)
    ).first()
    if exact is not None:
        return True

    fallback = session.scalars(
        select(ReaderUser.id)
        .where(ReaderUser.email.ilike(_escape_like(email), escape="\\"))
        .limit(1)
    ).first()
    if fallback is not None:
        logger.debug("Entitlement matched case-insensitively for %s", email)
        return True
    return False
