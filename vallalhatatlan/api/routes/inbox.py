"""
vallalhatatlan.api.routes.inbox — Reader ↔ editor messaging
=============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from vallalhatatlan.api.deps import (
    get_config,
    get_current_user,
    get_engine,
    get_session,
    require_write_access,
)
from vallalhatatlan.api.rate_limit import rate_limited_user
from vallalhatatlan.config import SiteConfig
from vallalhatatlan.errors import ApiError, InboxFailure
from vallalhatatlan.services import inbox_service
from vallalhatatlan.services.identity_service import Identity

router = APIRouter(prefix="/inbox", tags=["inbox"])


class MessageCreate(BaseModel):
    body: str | None = None
    conversationId: str | None = None


@router.get("")
def get_inbox(
    user: Identity = Depends(get_current_user),
    session: Session = Depends(get_session),
    cfg: SiteConfig = Depends(get_config),
):
    """The caller's conversation (``null`` before their first message)."""
    convo = inbox_service.get_conversation_for_user(session, user.id)
    return {
        "conversation": convo.to_dict() if convo else None,
        "isAdmin": cfg.is_admin_email(user.email),
    }


@router.post("", dependencies=[Depends(require_write_access)])
def open_inbox(
    user: Identity = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return {"conversationId": inbox_service.create_conversation_if_missing(engine, user.id)}


@router.get("/messages")
def get_messages(
    conversation_id: str | None = Query(None, alias="conversationId"),
    user: Identity = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: SiteConfig = Depends(get_config),
):
    if not conversation_id:
        raise ApiError(InboxFailure.MISSING_CONVERSATION)
    messages = inbox_service.list_messages(
        engine,
        conversation_id,
        user_id=user.id,
        is_admin=cfg.is_admin_email(user.email),
    )
    return {"messages": messages}


@router.post("/messages", dependencies=[Depends(require_write_access)])
def post_message(
    body: MessageCreate,
    user: Identity = Depends(rate_limited_user),
    engine: Engine = Depends(get_engine),
    cfg: SiteConfig = Depends(get_config),
):
    conversation_id = inbox_service.post_message(
        engine,
        user_id=user.id,
        is_admin=cfg.is_admin_email(user.email),
        conversation_id=body.conversationId,
        body=body.body,
    )
    return {"ok": True, "conversationId": conversation_id}
