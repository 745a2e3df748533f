"""
vallalhatatlan.services.content_service — Story metadata & text files
=======================================================================

Story metadata is static, in-process data.  Story text lives on disk as
``<content_dir>/<slug>.txt``.

Reading text is explicit about failure: :func:`read_story_text` raises
:class:`StoryNotFoundError`, and only the reader boundary
(:func:`story_text_or_placeholder`) turns that into a placeholder so one
missing file never takes the whole reader down.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from pathlib import Path
from urllib.parse import unquote

logger = logging.getLogger(__name__)

MISSING_STORY_PLACEHOLDER = "[Hiányzó szöveg – ellenőrizd a .txt fájlokat]"

_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")


class StoryNotFoundError(LookupError):
    """No readable text file exists for the requested slug."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"No story text for slug {slug!r}")


@dataclass(frozen=True, slots=True)
class StoryMeta:
    order: int
    slug: str
    title: str
    kind: str = "story"  # "cover" | "story"


STORIES_META: tuple[StoryMeta, ...] = (
    StoryMeta(0, "borito", "Vállalhatatlan", kind="cover"),
    StoryMeta(1, "01-jezus-megszoktet", "Jézus megszöktet"),
    StoryMeta(2, "02-teleki-ter", "Teleki tér"),
    StoryMeta(3, "03-utazas-fuegyhazara", "Utazás Fűegyházára"),
    StoryMeta(4, "04-tartozunk-egy-ukranak", "Tartozunk egy ukránnak"),
    StoryMeta(5, "05-bosnyak-ter", "Bosnyák tér"),
    StoryMeta(6, "06-ibolya-presszo", "Ibolya presszó"),
    StoryMeta(7, "07-elso-nap-a-paradicsomban", "Első nap a paradicsomban"),
    StoryMeta(8, "08-a-mersekelten-hires", "A mérsékelten híres"),
    StoryMeta(9, "09-bortonbe-kerulok", "Börtönbe kerülök"),
    StoryMeta(10, "10-agressziv-laci", "Agresszív Laci"),
)

# Slugs printed in the book's QR codes → current numbered slugs
LEGACY_SLUGS: dict[str, str] = {
    "jezus-megszoktet": "01-jezus-megszoktet",
    "teleki-ter": "02-teleki-ter",
    "utazas-fuegyhazara": "03-utazas-fuegyhazara",
    "tartozunk-egy-ukranak": "04-tartozunk-egy-ukranak",
    "bosnyak-ter": "05-bosnyak-ter",
    "ibolya-presszo": "06-ibolya-presszo",
    "elso-nap-a-paradicsomban": "07-elso-nap-a-paradicsomban",
    "a-mersekelten-hires": "08-a-mersekelten-hires",
    "bortonbe-kerulok": "09-bortonbe-kerulok",
    "agressziv-laci": "10-agressziv-laci",
}


def canonical_slug(slug: str) -> str:
    return LEGACY_SLUGS.get(slug, slug)


def humanize(slug: str) -> str:
    """``"01-teleki-ter"`` → ``"teleki ter"``."""
    return re.sub(r"^\d+-", "", unquote(slug)).replace("-", " ")


def story_title(slug: str) -> str:
    """Title from the metadata table, else the humanized slug."""
    for meta in STORIES_META:
        if meta.slug == slug:
            return meta.title
    return humanize(slug)


def is_valid_slug(slug: str) -> bool:
    return bool(slug) and _SLUG_RE.match(slug) is not None


def ordered_stories() -> list[StoryMeta]:
    return sorted(STORIES_META, key=lambda s: s.order)


# ---------------------------------------------------------------------------
# Text loading
# ---------------------------------------------------------------------------
def read_story_text(slug: str, content_dir: str | Path) -> str:
    """Return the text of ``<content_dir>/<slug>.txt``.

    Raises
    ------
    StoryNotFoundError
        If the slug is malformed or the file cannot be read.
    """
    if not is_valid_slug(slug):
        raise StoryNotFoundError(slug)

    path = Path(content_dir) / f"{slug}.txt"
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise StoryNotFoundError(slug) from exc


def story_text_or_placeholder(slug: str, content_dir: str | Path) -> str:
    """Reader boundary: degrade a missing file to a visible placeholder."""
    try:
        return read_story_text(slug, content_dir)
    except StoryNotFoundError:
        logger.error("Story text missing: %s/%s.txt", content_dir, slug)
        return MISSING_STORY_PLACEHOLDER


def build_reader_payload(content_dir: str | Path) -> list[dict]:
    """Ordered metadata merged with text; covers carry no text."""
    stories = []
    for meta in ordered_stories():
        text = "" if meta.kind == "cover" else story_text_or_placeholder(meta.slug, content_dir)
        stories.append({**asdict(meta), "text": text})
    return stories
