"""
vallalhatatlan.api.routes.reader — Gated reader endpoints
===========================================================
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header
from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vallalhatatlan.api.deps import (
    get_bearer_user,
    get_config,
    get_engine,
    get_identity_provider,
    get_session,
)
from vallalhatatlan.config import SiteConfig
from vallalhatatlan.database.engine import get_session as open_session
from vallalhatatlan.errors import AccessFailure, ApiError, ServerFailure
from vallalhatatlan.services.content_service import build_reader_payload
from vallalhatatlan.services.entitlement_service import has_reader_access, normalize_email
from vallalhatatlan.services.identity_service import Identity, IdentityProvider

logger = logging.getLogger(__name__)
router = APIRouter(tags=["reader"])


# ---------------------------------------------------------------------------
# GET /reader-access
# ---------------------------------------------------------------------------
@router.get("/reader-access")
def reader_access(
    authorization: Annotated[str | None, Header()] = None,
    provider: IdentityProvider | None = Depends(get_identity_provider),
    engine: Engine = Depends(get_engine),
):
    """``{hasAccess, email}``; every failure body also says ``hasAccess: false``."""
    try:
        user = get_bearer_user(authorization, provider, engine)
    except ApiError as exc:
        raise ApiError(exc.code, status_code=exc.status_code, body={"hasAccess": False}) from exc

    email = normalize_email(user.email, strip_plus=True)
    if not email:
        raise ApiError(AccessFailure.NO_EMAIL, body={"hasAccess": False})

    try:
        with open_session(engine) as session:
            allowed = has_reader_access(session, email)
    except SQLAlchemyError as exc:
        logger.exception("Entitlement query failed for %s", email)
        raise ApiError(ServerFailure.SERVER_ERROR, body={"hasAccess": False}) from exc

    return {"hasAccess": allowed, "email": email}


# ---------------------------------------------------------------------------
# GET /reader-stories
# ---------------------------------------------------------------------------
@router.get("/reader-stories")
def reader_stories(
    user: Identity = Depends(get_bearer_user),
    session: Session = Depends(get_session),
    cfg: SiteConfig = Depends(get_config),
):
    """Every story, ordered, with its text (or the missing-text placeholder)."""
    if not has_reader_access(session, normalize_email(user.email)):
        logger.info("Reader %s has no entitlement", user.id)
        raise ApiError(AccessFailure.NO_ACCESS)
    return {"stories": build_reader_payload(cfg.content_dir)}
