"""
vallalhatatlan.api.main — FastAPI application entry point
===========================================================

Run with::

    uvicorn vallalhatatlan.api.main:app --reload --port 8000

or ``python -m vallalhatatlan``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

load_dotenv()

from vallalhatatlan.api.auth import router as auth_router  # noqa: E402
from vallalhatatlan.api.deps import get_engine  # noqa: E402
from vallalhatatlan.api.rate_limit import configure_rate_limiter  # noqa: E402
from vallalhatatlan.api.routes.admin import router as admin_router  # noqa: E402
from vallalhatatlan.api.routes.audio import router as audio_router  # noqa: E402
from vallalhatatlan.api.routes.gifts import router as gifts_router  # noqa: E402
from vallalhatatlan.api.routes.inbox import router as inbox_router  # noqa: E402
from vallalhatatlan.api.routes.presence import router as presence_router  # noqa: E402
from vallalhatatlan.api.routes.profile import router as profile_router  # noqa: E402
from vallalhatatlan.api.routes.public import router as public_router  # noqa: E402
from vallalhatatlan.api.routes.reader import router as reader_router  # noqa: E402
from vallalhatatlan.api.routes.system import router as system_router  # noqa: E402
from vallalhatatlan.errors import ApiError, ServerFailure  # noqa: E402
from vallalhatatlan.services.storage_client import StorageError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    configure_rate_limiter(engine=engine)
    logger.info("Vállalhatatlan API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Vállalhatatlan API shutting down")


app = FastAPI(
    title="Vállalhatatlan Reader API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-System-Mode", "Retry-After"],
)


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------
@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": ServerFailure.SERVER_ERROR.value}, status_code=500)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Audio proxy error on %s: %s", request.url.path, exc)
    return PlainTextResponse(f"Audio fetch error: {exc}", status_code=502)


# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(reader_router, prefix="/api")
app.include_router(inbox_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(presence_router, prefix="/api")
app.include_router(system_router, prefix="/api")
app.include_router(gifts_router, prefix="/api")
app.include_router(public_router, prefix="/api")
app.include_router(profile_router, prefix="/api")
app.include_router(audio_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
