"""
vallalhatatlan.api.routes.presence — "Who else is reading?"
=============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from vallalhatatlan.api.deps import get_bearer_user, get_engine, get_session
from vallalhatatlan.services.identity_service import Identity
from vallalhatatlan.services.presence_service import count_online, heartbeat

router = APIRouter(prefix="/presence", tags=["presence"])


@router.post("")
def post_heartbeat(
    user: Identity = Depends(get_bearer_user),
    engine: Engine = Depends(get_engine),
):
    heartbeat(engine, user.id, user.email)
    return {"success": True}


@router.get("")
def get_online_count(session: Session = Depends(get_session)):
    return {"count": count_online(session)}
