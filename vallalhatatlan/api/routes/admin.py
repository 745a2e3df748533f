"""
vallalhatatlan.api.routes.admin — Editor-only endpoints
=========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from vallalhatatlan.api.deps import get_admin_user, get_engine, get_session
from vallalhatatlan.api.rate_limit import rate_limited_user
from vallalhatatlan.database.models import SystemMode
from vallalhatatlan.services import inbox_service
from vallalhatatlan.services.identity_service import Identity
from vallalhatatlan.services.system_service import set_system_mode

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(get_admin_user)])


class ModeUpdate(BaseModel):
    mode: SystemMode


@router.get("/inbox")
def list_inbox(
    limit: int | None = Query(None),
    session: Session = Depends(get_session),
):
    """All conversations, most recently active first."""
    convos = inbox_service.list_conversations(session, limit)
    return {"conversations": [c.to_dict() for c in convos]}


@router.put("/system/mode")
def update_system_mode(
    body: ModeUpdate,
    admin: Identity = Depends(rate_limited_user),
    engine: Engine = Depends(get_engine),
):
    status = set_system_mode(engine, body.mode, actor=admin.email or admin.id)
    return status.to_dict()
