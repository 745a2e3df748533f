"""
vallalhatatlan.api.routes.profile — Reader nickname
=====================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from vallalhatatlan.api.deps import (
    get_bearer_user,
    get_engine,
    get_session,
    require_write_access,
)
from vallalhatatlan.services.identity_service import Identity
from vallalhatatlan.services.user_service import get_public_profile, update_nickname

router = APIRouter(prefix="/user", tags=["profile"])


class ProfileUpdate(BaseModel):
    nickname: str | None = None


@router.patch("/profile", dependencies=[Depends(require_write_access)])
def patch_profile(
    body: ProfileUpdate,
    user: Identity = Depends(get_bearer_user),
    engine: Engine = Depends(get_engine),
):
    return {"ok": True, "profile": update_nickname(engine, user, body.nickname)}


@router.get("/profile")
def get_profile(
    user_id: str | None = Query(None, alias="userId"),
    session: Session = Depends(get_session),
):
    """Public part of a profile: id and nickname only."""
    return {"ok": True, "profile": get_public_profile(session, user_id)}
