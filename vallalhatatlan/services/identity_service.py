"""
vallalhatatlan.services.identity_service — Who is calling?
============================================================

Two ways a request can prove identity:

1. **Bearer token** issued by Supabase Auth.  We ask the provider
   (``GET /auth/v1/user``) to resolve it — no local JWT verification, so a
   revoked session is rejected immediately.
2. **Session cookie** minted by our own magic-link flow.  The cookie holds
   an HS256 JWT (``type=session``) whose ``sub`` is a ``users`` row id.

Both resolve to an :class:`Identity`.  Failures never retry; they map
straight to ``missing_token`` / ``unauthenticated``.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

import httpx
import jwt
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from vallalhatatlan.database.engine import get_session
from vallalhatatlan.database.models import ReaderUser
from vallalhatatlan.errors import ApiError, AuthFailure, ServerFailure

logger = logging.getLogger(__name__)

LOGIN_TOKEN_TTL = timedelta(minutes=15)
SESSION_TOKEN_TTL = timedelta(days=30)
SESSION_COOKIE_NAME = "session"

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class Identity:
    id: str
    email: str | None


class IdentityProvider(Protocol):
    def get_user(self, token: str) -> Identity | None:
        """Resolve *token* to an identity, or ``None`` if it is not valid."""


def parse_bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer …`` header."""
    if not authorization:
        return None
    match = _BEARER_RE.match(authorization.strip())
    if match is None:
        return None
    token = match.group(1).strip()
    return token or None


# ---------------------------------------------------------------------------
# Supabase Auth
# ---------------------------------------------------------------------------
class SupabaseIdentityProvider:
    """Resolves Supabase access tokens through the Auth REST API."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        *,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 10,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self._client = httpx.Client(timeout=timeout, transport=transport)

    @classmethod
    def from_env(cls) -> SupabaseIdentityProvider:
        base_url = os.getenv("SUPABASE_URL", "").strip()
        anon_key = os.getenv("SUPABASE_ANON_KEY", "").strip()
        if not base_url or not anon_key:
            logger.error("SUPABASE_URL / SUPABASE_ANON_KEY not configured")
            raise ApiError(ServerFailure.SERVER_MISCONFIGURED)
        return cls(base_url, anon_key)

    def get_user(self, token: str) -> Identity | None:
        try:
            resp = self._client.get(
                f"{self.base_url}/auth/v1/user",
                headers={"apikey": self.anon_key, "Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            logger.error("Supabase getUser request failed: %s", exc)
            raise ApiError(ServerFailure.SERVER_ERROR) from exc

        if resp.status_code != 200:
            return None
        data = resp.json()
        user_id = data.get("id")
        if not user_id:
            return None
        return Identity(id=str(user_id), email=data.get("email"))

    def close(self) -> None:
        self._client.close()


# ---------------------------------------------------------------------------
# Magic-link tokens
# ---------------------------------------------------------------------------
def _sign(user_id: str, token_type: str, ttl: timedelta, secret: str, algorithm: str) -> str:
    now = datetime.now(UTC)
    payload = {"sub": user_id, "type": token_type, "iat": now, "exp": now + ttl}
    return jwt.encode(payload, secret, algorithm=algorithm)


def _verify(token: str, token_type: str, secret: str, algorithm: str) -> str | None:
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except InvalidTokenError:
        return None
    if payload.get("type") != token_type or not payload.get("sub"):
        return None
    return str(payload["sub"])


def sign_login_token(user_id: str, *, secret: str, algorithm: str = "HS256") -> str:
    """Short-lived token embedded in the emailed sign-in link."""
    return _sign(user_id, "login", LOGIN_TOKEN_TTL, secret, algorithm)


def verify_login_token(token: str, *, secret: str, algorithm: str = "HS256") -> str | None:
    return _verify(token, "login", secret, algorithm)


def sign_session_token(user_id: str, *, secret: str, algorithm: str = "HS256") -> str:
    """Long-lived token stored in the HTTP-only ``session`` cookie."""
    return _sign(user_id, "session", SESSION_TOKEN_TTL, secret, algorithm)


def verify_session_token(token: str, *, secret: str, algorithm: str = "HS256") -> str | None:
    return _verify(token, "session", secret, algorithm)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------
def _identity_from_session(engine: Engine, user_id: str) -> Identity | None:
    with get_session(engine) as session:
        user = session.get(ReaderUser, user_id)
        if user is None:
            return None
        return Identity(id=user.id, email=user.email)


def resolve_identity(
    *,
    authorization: str | None,
    session_cookie: str | None,
    provider: IdentityProvider | None,
    engine: Engine,
    secret: str,
    algorithm: str = "HS256",
) -> Identity:
    """Resolve the caller from a bearer header, falling back to the cookie.

    Raises
    ------
    ApiError
        ``missing_token`` when neither credential is present,
        ``unauthenticated`` when the presented one does not verify,
        ``server_misconfigured`` for a bearer token when no provider is
        configured.
    """
    token = parse_bearer_token(authorization)
    if token:
        if provider is None:
            raise ApiError(ServerFailure.SERVER_MISCONFIGURED)
        identity = provider.get_user(token)
        if identity is None:
            raise ApiError(AuthFailure.UNAUTHENTICATED)
        return identity

    if session_cookie:
        user_id = verify_session_token(session_cookie, secret=secret, algorithm=algorithm)
        identity = _identity_from_session(engine, user_id) if user_id else None
        if identity is None:
            raise ApiError(AuthFailure.UNAUTHENTICATED)
        return identity

    raise ApiError(AuthFailure.MISSING_TOKEN)
