"""
vallalhatatlan.api.routes.gifts — Dead-drop reveal
====================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from vallalhatatlan.api.deps import get_engine, require_write_access
from vallalhatatlan.services.gift_service import reveal_gift

router = APIRouter(prefix="/gift", tags=["gifts"])


@router.post("/{gift_id}", dependencies=[Depends(require_write_access)])
def reveal(gift_id: str, engine: Engine = Depends(get_engine)):
    """Reveal the pickup token once; later calls get a typed ``ok: false`` error."""
    return {"ok": True, "token": reveal_gift(engine, gift_id)}
