"""
vallalhatatlan.api.auth — Magic link → session cookie
=======================================================

1. ``POST /api/auth/magic-link`` mails a 15-minute login link.
2. ``GET /api/auth/callback`` trades the login token for a 30-day session
   cookie and redirects back into the site.
3. ``/api/auth/logout`` clears the cookie.
"""

from __future__ import annotations

import logging
from urllib.parse import quote, urljoin, urlsplit

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse, Response
from pydantic import BaseModel
from sqlalchemy import Engine

from vallalhatatlan.api.deps import (
    JWT_ALGORITHM,
    JWT_SECRET,
    get_config,
    get_current_user,
    get_engine,
)
from vallalhatatlan.config import SiteConfig
from vallalhatatlan.database.engine import run_db
from vallalhatatlan.errors import ApiError, ServerFailure
from vallalhatatlan.services.entitlement_service import normalize_email
from vallalhatatlan.services.identity_service import (
    SESSION_COOKIE_NAME,
    SESSION_TOKEN_TTL,
    Identity,
    sign_login_token,
    sign_session_token,
    verify_login_token,
)
from vallalhatatlan.services.mail_service import send_sign_in_link
from vallalhatatlan.services.user_service import upsert_user_by_email

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

DEFAULT_RETURN_TO = "/dashboard"


class MagicLinkBody(BaseModel):
    email: str = ""


def safe_return_to(return_to: str | None, site_url: str) -> str:
    """*return_to* if it resolves to the site's own origin, else the dashboard."""
    if not return_to:
        return DEFAULT_RETURN_TO
    site = urlsplit(site_url)
    target = urlsplit(urljoin(site_url + "/", return_to))
    if (target.scheme, target.netloc) != (site.scheme, site.netloc):
        return DEFAULT_RETURN_TO
    return return_to


def _clear_session_cookie(response: Response, cfg: SiteConfig) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        "",
        max_age=0,
        expires=0,
        path="/",
        httponly=True,
        secure=cfg.cookie_secure,
        samesite="lax",
    )


@router.post("/magic-link")
async def magic_link(
    body: MagicLinkBody,
    cfg: SiteConfig = Depends(get_config),
    engine: Engine = Depends(get_engine),
):
    """Upsert the reader and send them a one-time sign-in link."""
    email = normalize_email(body.email)
    if not email:
        raise HTTPException(400, "Email required")

    user_id = await run_db(upsert_user_by_email, engine, email)
    token = sign_login_token(user_id, secret=JWT_SECRET, algorithm=JWT_ALGORITHM)
    callback_url = f"{cfg.site_url}/api/auth/callback?token={quote(token, safe='')}"

    try:
        await send_sign_in_link(email, callback_url)
    except httpx.HTTPError as exc:
        logger.error("Sign-in mail to %s failed: %s", email, exc)
        raise ApiError(ServerFailure.SERVER_ERROR) from exc
    return {"ok": True}


@router.get("/callback")
def callback(
    token: str = Query(""),
    return_to: str | None = Query(None, alias="returnTo"),
    cfg: SiteConfig = Depends(get_config),
):
    """Exchange a login token for the session cookie."""
    if not token:
        raise HTTPException(400, "Missing token")
    user_id = verify_login_token(token, secret=JWT_SECRET, algorithm=JWT_ALGORITHM)
    if not user_id:
        raise HTTPException(400, "Invalid or expired token")

    session_token = sign_session_token(user_id, secret=JWT_SECRET, algorithm=JWT_ALGORITHM)
    response = RedirectResponse(safe_return_to(return_to, cfg.site_url), status_code=307)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        session_token,
        max_age=int(SESSION_TOKEN_TTL.total_seconds()),
        path="/",
        httponly=True,
        secure=cfg.cookie_secure,
        samesite="lax",
    )
    logger.info("Session started for user %s", user_id)
    return response


@router.get("/logout")
def logout_redirect(cfg: SiteConfig = Depends(get_config)):
    response = RedirectResponse("/", status_code=307)
    _clear_session_cookie(response, cfg)
    return response


@router.post("/logout", status_code=204)
def logout(cfg: SiteConfig = Depends(get_config)):
    response = Response(status_code=204)
    _clear_session_cookie(response, cfg)
    return response


@router.get("/me")
def me(
    user: Identity = Depends(get_current_user),
    cfg: SiteConfig = Depends(get_config),
):
    return {"id": user.id, "email": user.email, "isAdmin": cfg.is_admin_email(user.email)}
