"""
vallalhatatlan.api.rate_limit — Per-Actor Mutation Rate Limiting
==================================================================

Throttles the write endpoints a single account could hammer (posting inbox
messages, flipping the system mode): 30 mutations per minute per actor.

Uses a sliding-window counter keyed by the resolved identity id.  Returns
HTTP 429 ``rate_limit_exceeded`` with a ``Retry-After`` header when the
limit is exceeded.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Depends, Request
from sqlalchemy import Engine, delete, func, select
from sqlalchemy.orm import Session

from vallalhatatlan.api.deps import get_current_user
from vallalhatatlan.database.engine import get_session
from vallalhatatlan.database.models import MutationRateLimitEvent
from vallalhatatlan.errors import ApiError, RateFailure
from vallalhatatlan.services.identity_service import Identity

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT = 30
DEFAULT_WINDOW_SECONDS = 60

_MUTATION_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class MutationRateLimiter:
    """Sliding-window rate limiter keyed by actor id.

    State lives in ``mutation_rate_limit_events`` so it is shared between
    workers and survives restarts.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_RATE_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        *,
        engine: Engine,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.engine = engine

    def _normalize_dt(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def _prune(self, session: Session, actor_id: str, cutoff: datetime) -> None:
        session.execute(
            delete(MutationRateLimitEvent).where(
                MutationRateLimitEvent.actor_id == actor_id,
                MutationRateLimitEvent.timestamp < cutoff,
            )
        )

    def check(self, actor_id: str) -> tuple[bool, dict[str, Any]]:
        """Check whether *actor_id* may make another mutation.

        Returns (allowed, info) where info holds ``remaining``, ``reset``
        (seconds until a slot frees up) and ``limit``.
        """
        now = datetime.now(UTC)
        cutoff = now - timedelta(seconds=self.window_seconds)

        with get_session(self.engine) as session:
            self._prune(session, actor_id, cutoff)
            timestamps = session.scalars(
                select(MutationRateLimitEvent.timestamp)
                .where(MutationRateLimitEvent.actor_id == actor_id)
                .order_by(MutationRateLimitEvent.timestamp.asc())
            ).all()

        count = len(timestamps)
        if count >= self.max_requests:
            oldest = self._normalize_dt(timestamps[0])
            reset = (oldest + timedelta(seconds=self.window_seconds) - now).total_seconds()
            return False, {
                "remaining": 0,
                "reset": max(1, int(reset) + 1),
                "limit": self.max_requests,
            }

        return True, {
            "remaining": max(0, self.max_requests - count),
            "reset": self.window_seconds,
            "limit": self.max_requests,
        }

    def record(self, actor_id: str) -> dict[str, Any]:
        """Record a mutation and return the updated info dict."""
        now = datetime.now(UTC)
        cutoff = now - timedelta(seconds=self.window_seconds)

        with get_session(self.engine) as session:
            self._prune(session, actor_id, cutoff)
            session.add(MutationRateLimitEvent(actor_id=actor_id, timestamp=now))
            session.flush()
            count = session.scalar(
                select(func.count())
                .select_from(MutationRateLimitEvent)
                .where(MutationRateLimitEvent.actor_id == actor_id)
            ) or 0

        return {
            "remaining": max(0, self.max_requests - count),
            "reset": self.window_seconds,
            "limit": self.max_requests,
        }

    def reset(self, actor_id: str | None = None) -> None:
        """Clear rate limit state. If actor_id is None, clear all."""
        with get_session(self.engine) as session:
            stmt = delete(MutationRateLimitEvent)
            if actor_id is not None:
                stmt = stmt.where(MutationRateLimitEvent.actor_id == actor_id)
            session.execute(stmt)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------
_limiter: MutationRateLimiter | None = None


def get_rate_limiter() -> MutationRateLimiter:
    if _limiter is None:
        raise RuntimeError("Rate limiter not configured — call configure_rate_limiter() first")
    return _limiter


def configure_rate_limiter(
    *,
    engine: Engine,
    max_requests: int = DEFAULT_RATE_LIMIT,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
) -> None:
    global _limiter
    _limiter = MutationRateLimiter(
        max_requests=max_requests,
        window_seconds=window_seconds,
        engine=engine,
    )


# ---------------------------------------------------------------------------
# FastAPI dependency — chains after get_current_user
# ---------------------------------------------------------------------------
async def rate_limited_user(
    request: Request,
    user: Identity = Depends(get_current_user),
) -> Identity:
    """Resolve the caller *and* count the request against their window.

    Non-mutating methods pass straight through.
    """
    if request.method not in _MUTATION_METHODS:
        return user

    limiter = get_rate_limiter()
    allowed, info = await asyncio.to_thread(limiter.check, user.id)

    if not allowed:
        logger.warning(
            "Rate limit exceeded for %s: %d/%d requests in window",
            user.id, limiter.max_requests, limiter.window_seconds,
        )
        raise ApiError(
            RateFailure.RATE_LIMIT_EXCEEDED,
            body={
                "message": f"Rate limit exceeded: {limiter.max_requests} mutations per minute.",
                "retry_after": info["reset"],
            },
            headers={"Retry-After": str(info["reset"])},
        )

    await asyncio.to_thread(limiter.record, user.id)
    return user
