"""
vallalhatatlan.api.routes.public — QR teaser windows and playlists
====================================================================

No login here.  A QR code in the printed book opens a ten-minute window
on one story for the scanning IP; playlists are public.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from vallalhatatlan.api.deps import get_config, get_engine, get_session
from vallalhatatlan.config import SiteConfig
from vallalhatatlan.errors import ApiError, ContentFailure
from vallalhatatlan.services import content_service, playlist_service
from vallalhatatlan.services.public_story_service import check_window, client_ip, open_window

logger = logging.getLogger(__name__)
router = APIRouter(tags=["public"])


class StoryAccessRequest(BaseModel):
    slug: str = ""


def _slug_or_400(raw: str | None) -> str:
    slug = content_service.canonical_slug((raw or "").strip())
    if not content_service.is_valid_slug(slug):
        raise ApiError(ContentFailure.INVALID_SLUG)
    return slug


# ---------------------------------------------------------------------------
# Teaser windows
# ---------------------------------------------------------------------------
@router.post("/public/story-access")
def story_access(
    body: StoryAccessRequest,
    x_forwarded_for: Annotated[str | None, Header()] = None,
    x_real_ip: Annotated[str | None, Header()] = None,
    user_agent: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
):
    slug = _slug_or_400(body.slug)
    ip = client_ip(x_forwarded_for, x_real_ip)
    return open_window(engine, ip=ip, slug=slug, user_agent=user_agent).to_dict()


@router.get("/public/story")
def public_story(
    slug: str | None = Query(None),
    x_forwarded_for: Annotated[str | None, Header()] = None,
    x_real_ip: Annotated[str | None, Header()] = None,
    session: Session = Depends(get_session),
    cfg: SiteConfig = Depends(get_config),
):
    slug = _slug_or_400(slug)
    ip = client_ip(x_forwarded_for, x_real_ip)
    window = check_window(session, ip=ip, slug=slug)

    try:
        text = content_service.read_story_text(slug, cfg.content_dir)
    except content_service.StoryNotFoundError as exc:
        logger.error("Public story %s has no text file", slug)
        raise ApiError(ContentFailure.STORY_NOT_FOUND) from exc

    return {
        "slug": slug,
        "title": content_service.story_title(slug),
        "text": text,
        "expiresAt": window.expires_at.isoformat(),
        "remainingSeconds": window.remaining_seconds,
    }


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------
@router.get("/playlists")
def list_playlists(cfg: SiteConfig = Depends(get_config)):
    slugs = playlist_service.list_playlist_slugs(cfg.playlists_dir)
    return {"playlists": [{"slug": s, "title": content_service.humanize(s)} for s in slugs]}


@router.get("/playlists/{slug}")
def get_playlist(slug: str, cfg: SiteConfig = Depends(get_config)):
    playlist = playlist_service.load_playlist(cfg.playlists_dir, slug)
    if playlist is None:
        raise ApiError(ContentFailure.PLAYLIST_NOT_FOUND)
    return {"slug": slug, "title": content_service.humanize(slug), **playlist}
