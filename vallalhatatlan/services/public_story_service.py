"""
vallalhatatlan.services.public_story_service — Public teaser windows
======================================================================

Anyone scanning a QR code in the book may read that one story for ten
minutes.  Visitors are keyed by a SHA-256 of their IP, never the raw
address.  The first request after a window has lapsed deletes it and
reports it expired; the request after that opens a fresh window.
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from vallalhatatlan.constants import PUBLIC_STORY_WINDOW
from vallalhatatlan.database.engine import get_session
from vallalhatatlan.database.models import PublicStoryAccess
from vallalhatatlan.errors import ApiError, ContentFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AccessWindow:
    allowed: bool
    expires_at: datetime | None = None
    remaining_seconds: int = 0
    first_access: bool = False
    expired: bool = False

    def to_dict(self) -> dict:
        if not self.allowed:
            return {"allowed": False, "expired": self.expired}
        return {
            "allowed": True,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "remainingSeconds": self.remaining_seconds,
            "firstAccess": self.first_access,
        }


def hash_ip(ip: str) -> str:
    return hashlib.sha256(ip.encode("utf-8")).hexdigest()


def client_ip(forwarded_for: str | None, real_ip: str | None) -> str:
    """First ``X-Forwarded-For`` hop, else ``X-Real-IP``; ``missing_ip`` otherwise."""
    ip = (forwarded_for or "").split(",")[0].strip() or (real_ip or "").strip()
    if not ip:
        raise ApiError(ContentFailure.MISSING_IP)
    return ip


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


def _remaining(expires_at: datetime, now: datetime) -> int:
    return math.ceil((expires_at - now).total_seconds())


def _find(session: Session, ip_hash: str, slug: str) -> PublicStoryAccess | None:
    return session.scalars(
        select(PublicStoryAccess).where(
            PublicStoryAccess.ip_hash == ip_hash,
            PublicStoryAccess.story_slug == slug,
        )
    ).first()


def open_window(
    engine: Engine,
    *,
    ip: str,
    slug: str,
    user_agent: str | None,
    now: datetime | None = None,
) -> AccessWindow:
    """Start, extend the view count of, or expire a teaser window."""
    now = now or datetime.now(UTC)
    ip_hash = hash_ip(ip)

    with get_session(engine) as session:
        existing = _find(session, ip_hash, slug)
        if existing is not None:
            expires_at = _as_utc(existing.expires_at)
            if now < expires_at:
                existing.page_views += 1
                return AccessWindow(
                    allowed=True,
                    expires_at=expires_at,
                    remaining_seconds=_remaining(expires_at, now),
                )
            session.delete(existing)
            logger.info("Public window for %s expired; removed", slug)
            return AccessWindow(allowed=False, expired=True)

        expires_at = now + PUBLIC_STORY_WINDOW
        session.add(PublicStoryAccess(
            ip_hash=ip_hash,
            story_slug=slug,
            first_access_at=now,
            expires_at=expires_at,
            page_views=1,
            user_agent=(user_agent or "unknown")[:512],
        ))
        return AccessWindow(
            allowed=True,
            expires_at=expires_at,
            remaining_seconds=int(PUBLIC_STORY_WINDOW.total_seconds()),
            first_access=True,
        )


def check_window(
    session: Session,
    *,
    ip: str,
    slug: str,
    now: datetime | None = None,
) -> AccessWindow:
    """Verify a live window exists; raises ``no_public_access`` / ``access_expired``."""
    now = now or datetime.now(UTC)
    record = _find(session, hash_ip(ip), slug)
    if record is None:
        raise ApiError(ContentFailure.NO_PUBLIC_ACCESS)
    expires_at = _as_utc(record.expires_at)
    if now >= expires_at:
        raise ApiError(ContentFailure.ACCESS_EXPIRED)
    return AccessWindow(
        allowed=True,
        expires_at=expires_at,
        remaining_seconds=_remaining(expires_at, now),
    )
