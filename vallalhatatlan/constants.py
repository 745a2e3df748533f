"""
vallalhatatlan.constants — Shared Constants & Helpers
=======================================================

Single source of truth for limits, windows, and the small pure helpers the
audio player relies on.  Import from here instead of duplicating in
services and routes.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import timedelta

# ---------------------------------------------------------------------------
# Windows & limits
# ---------------------------------------------------------------------------
PRESENCE_WINDOW = timedelta(minutes=5)
PUBLIC_STORY_WINDOW = timedelta(minutes=10)

MAX_MESSAGE_CHARS = 2000

INBOX_LIST_DEFAULT = 50
INBOX_LIST_MIN = 1
INBOX_LIST_MAX = 200

NICKNAME_MAX_CHARS = 50

SYSTEM_STATUS_CACHE_SECONDS = 30

# ---------------------------------------------------------------------------
# Audio proxy
# ---------------------------------------------------------------------------
AUDIO_PASSTHROUGH_HEADERS: tuple[str, ...] = (
    "content-type",
    "content-length",
    "content-range",
    "accept-ranges",
    "etag",
    "last-modified",
    "x-bz-content-sha1",
)

AUDIO_CONTENT_TYPES: dict[str, str] = {
    "mp3": "audio/mpeg",
    "mpeg": "audio/mpeg",
    "mp2": "audio/mpeg",
    "m4a": "audio/mp4",
    "mp4": "audio/mp4",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "oga": "audio/ogg",
    "webm": "audio/webm",
}


def guess_audio_content_type(file_name: str) -> str | None:
    """Map a file extension to an audio MIME type, or ``None`` if unknown."""
    _, dot, ext = file_name.rpartition(".")
    if not dot:
        return None
    return AUDIO_CONTENT_TYPES.get(ext.lower())


# ---------------------------------------------------------------------------
# Audio player helpers
# ---------------------------------------------------------------------------
def fmt_time(seconds: float) -> str:
    """Format a playback position as ``m:ss``.

    Non-finite, zero and negative inputs all render as ``"0:00"``.
    """
    if not math.isfinite(seconds) or seconds <= 0:
        return "0:00"
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"


def band_avg(values: Sequence[int | float], a: int, b: int) -> float:
    """Average ``values[a..b]`` (inclusive) after clamping to the bounds.

    Used by the spectrum visualiser to collapse FFT bins into bands.
    An empty or inverted range averages to ``0``.
    """
    lo = max(0, a)
    hi = min(len(values) - 1, b)
    if hi < lo:
        return 0
    band = values[lo:hi + 1]
    return sum(band) / len(band)
