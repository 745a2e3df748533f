"""
vallalhatatlan.api.routes.system — Public system status
=========================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from vallalhatatlan.api.deps import get_session
from vallalhatatlan.constants import SYSTEM_STATUS_CACHE_SECONDS
from vallalhatatlan.errors import ApiError, SystemFailure
from vallalhatatlan.services.system_service import get_system_status

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/system", tags=["system"])


@router.get("/status")
def system_status(session: Session = Depends(get_session)):
    """Current mode; edge caches may hold it for 30 seconds."""
    status = get_system_status(session)
    if status is None:
        logger.error("system_control row missing")
        raise ApiError(SystemFailure.NOT_INITIALIZED)

    return JSONResponse(
        status.to_dict(),
        headers={
            "Cache-Control": (
                f"public, s-maxage={SYSTEM_STATUS_CACHE_SECONDS}, "
                f"stale-while-revalidate={SYSTEM_STATUS_CACHE_SECONDS * 2}"
            ),
            "X-System-Mode": status.mode.value,
        },
    )
