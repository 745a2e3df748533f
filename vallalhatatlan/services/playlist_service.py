"""
vallalhatatlan.services.playlist_service — Audio playlist files
=================================================================

Each playlist is ``<playlists_dir>/<slug>.json``::

    {"excerpt": "…", "tracks": [{"title": "…", "file": "…"}], "visuals": […]}

Anything unreadable or without a ``tracks`` list is treated as absent.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from urllib.parse import unquote

logger = logging.getLogger(__name__)


def list_playlist_slugs(playlists_dir: str | Path) -> list[str]:
    """Sorted playlist slugs; empty if the directory is missing."""
    directory = Path(playlists_dir)
    if not directory.is_dir():
        return []
    return sorted(
        unquote(p.stem) for p in directory.iterdir()
        if p.is_file() and p.suffix == ".json"
    )


def load_playlist(playlists_dir: str | Path, slug: str) -> dict | None:
    """Return the playlist dict, or ``None`` if missing or malformed."""
    if not slug or slug.startswith(".") or "/" in slug or "\\" in slug:
        return None
    path = Path(playlists_dir) / f"{slug}.json"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.debug("Playlist %s unavailable: %s", slug, exc)
        return None
    if not isinstance(data, dict) or not isinstance(data.get("tracks"), list):
        return None
    return data
