"""
vallalhatatlan.api.deps — FastAPI dependency injection
========================================================
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Annotated

from fastapi import Cookie, Depends, Header
from sqlalchemy import Engine

from vallalhatatlan.config import SiteConfig, load_config
from vallalhatatlan.database.engine import create_db_engine
from vallalhatatlan.database.engine import get_session as open_session
from vallalhatatlan.database.models import SystemMode
from vallalhatatlan.errors import ApiError, AuthFailure, SystemFailure
from vallalhatatlan.services.identity_service import (
    SESSION_COOKIE_NAME,
    Identity,
    IdentityProvider,
    SupabaseIdentityProvider,
    parse_bearer_token,
    resolve_identity,
)
from vallalhatatlan.services.storage_client import B2StorageClient
from vallalhatatlan.services.system_service import (
    READ_ONLY_MESSAGE,
    is_write_allowed,
    read_system_mode,
)

logger = logging.getLogger(__name__)

_WEAK_SECRETS = frozenset({
    "vallalhatatlan-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> SiteConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_identity_provider() -> IdentityProvider | None:
    """Supabase provider, or ``None`` when it is not configured.

    Cookie sessions keep working without Supabase; a bearer token then
    fails with ``server_misconfigured``.
    """
    try:
        return SupabaseIdentityProvider.from_env()
    except ApiError:
        return None


@lru_cache(maxsize=1)
def get_storage_client() -> B2StorageClient:
    return B2StorageClient.from_env()


def get_session(engine: Annotated[Engine, Depends(get_engine)]):
    """Request-scoped unit of work (see :func:`open_session`)."""
    with open_session(engine) as session:
        yield session


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    session_cookie: Annotated[str | None, Cookie(alias=SESSION_COOKIE_NAME)] = None,
    provider: IdentityProvider | None = Depends(get_identity_provider),
    engine: Engine = Depends(get_engine),
) -> Identity:
    """Bearer token first, then the magic-link session cookie."""
    return resolve_identity(
        authorization=authorization,
        session_cookie=session_cookie,
        provider=provider,
        engine=engine,
        secret=JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def get_bearer_user(
    authorization: Annotated[str | None, Header()] = None,
    provider: IdentityProvider | None = Depends(get_identity_provider),
    engine: Engine = Depends(get_engine),
) -> Identity:
    """Identity from the ``Authorization`` header only (reader endpoints)."""
    return resolve_identity(
        authorization=authorization,
        session_cookie=None,
        provider=provider,
        engine=engine,
        secret=JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def get_admin_user(
    user: Identity = Depends(get_current_user),
    cfg: SiteConfig = Depends(get_config),
) -> Identity:
    """Resolved identity whose email is on the admin allow-list; 403 otherwise."""
    if not cfg.is_admin_email(user.email):
        logger.warning("Non-admin %s tried an admin endpoint", user.id)
        raise ApiError(AuthFailure.FORBIDDEN)
    return user


# ---------------------------------------------------------------------------
# System mode
# ---------------------------------------------------------------------------
def get_system_mode(engine: Engine = Depends(get_engine)) -> SystemMode:
    """The mode for *this* request, read from the database every time."""
    with open_session(engine) as session:
        return read_system_mode(session)


def require_write_access(
    mode: SystemMode = Depends(get_system_mode),
    authorization: Annotated[str | None, Header()] = None,
    provider: IdentityProvider | None = Depends(get_identity_provider),
    cfg: SiteConfig = Depends(get_config),
) -> SystemMode:
    """Reject user-facing writes while the site is ``READ_ONLY``.

    Runs before the handler body, so a refused request never reaches the
    database write.  A bearer-authenticated admin is let through.
    """
    if mode is SystemMode.SAFE:
        return mode

    token = parse_bearer_token(authorization)
    if token and provider is not None:
        identity = provider.get_user(token)
        if identity is not None and is_write_allowed(mode, is_admin=cfg.is_admin_email(identity.email)):
            return mode

    logger.warning("Write refused: system is %s", mode.value)
    raise ApiError(
        SystemFailure.READ_ONLY,
        body={"mode": mode.value, "message": READ_ONLY_MESSAGE},
        headers={"X-System-Mode": mode.value},
    )
