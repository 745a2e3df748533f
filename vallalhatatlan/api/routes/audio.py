"""
vallalhatatlan.api.routes.audio — Private audiobook proxy
===========================================================

Streams files out of the private B2 bucket without exposing credentials.
``Range`` is forwarded so players can seek, and only a fixed set of
upstream headers reaches the client.
"""

from __future__ import annotations

import logging
from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask

from vallalhatatlan.api.deps import get_storage_client
from vallalhatatlan.constants import AUDIO_PASSTHROUGH_HEADERS, guess_audio_content_type
from vallalhatatlan.services.storage_client import B2StorageClient, close_stream

logger = logging.getLogger(__name__)
router = APIRouter(tags=["audio"])

GENERIC_CONTENT_TYPE = "application/octet-stream"


def build_proxy_headers(upstream: dict[str, str], file_name: str, *, download: bool) -> dict[str, str]:
    """Allow-listed upstream headers plus our cache and download policy."""
    headers = {
        key: upstream[key] for key in AUDIO_PASSTHROUGH_HEADERS if upstream.get(key)
    }
    headers["cache-control"] = "no-store"

    if download:
        base_name = file_name.rsplit("/", 1)[-1] or "audio.mp3"
        headers["content-disposition"] = f"attachment; filename*=UTF-8''{quote(base_name, safe='')}"

    current = headers.get("content-type")
    if not current or current == GENERIC_CONTENT_TYPE:
        guess = guess_audio_content_type(file_name)
        if guess:
            headers["content-type"] = guess
    return headers


@router.get("/audio/{file_path:path}")
async def stream_audio(
    file_path: str,
    download: str | None = Query(None),
    range_header: Annotated[str | None, Header(alias="range")] = None,
    storage: B2StorageClient = Depends(get_storage_client),
):
    if not file_path:
        return PlainTextResponse("Missing file path", status_code=400)

    upstream = await storage.open_stream(file_path, range_header)
    headers = build_proxy_headers(
        {k.lower(): v for k, v in upstream.headers.items()},
        file_path,
        download=download == "1",
    )
    return StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        headers=headers,
        background=BackgroundTask(close_stream, upstream),
    )
