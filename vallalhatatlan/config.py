"""
vallalhatatlan.config — YAML Configuration Loader
===================================================

Reads ``config.yaml`` for the soft, non-secret site settings (public URL,
admin allow-list, content directories).  Secrets (database URL, JWT
secret, Supabase and Backblaze keys) stay in the environment / ``.env``.

Usage::

    from vallalhatatlan.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.site_name)         # "Vállalhatatlan"
    print(cfg.admin_emails)      # ("editor@example.com",)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SiteConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    site_name: str
    site_url: str  # Public origin used in magic links and redirects

    # API
    api_port: int

    # Admin / inbox moderation
    admin_emails: tuple[str, ...]  # Lower-cased

    # Content on disk
    content_dir: str  # <content_dir>/<slug>.txt
    playlists_dir: str  # <playlists_dir>/<slug>.json

    # Optional
    cookie_secure: bool = True  # Disable only for plain-http local dev

    def is_admin_email(self, email: str | None) -> bool:
        """Case-insensitive membership in :attr:`admin_emails`."""
        if not email:
            return False
        return email.strip().lower() in self.admin_emails


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> SiteConfig:
    """Read *path* and return a :class:`SiteConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    return SiteConfig(
        site_name=raw["site_name"],
        site_url=str(raw["site_url"]).rstrip("/"),
        api_port=int(raw["api_port"]),
        admin_emails=tuple(
            str(e).strip().lower() for e in raw.get("admin_emails") or [] if str(e).strip()
        ),
        content_dir=raw["content_dir"],
        playlists_dir=raw["playlists_dir"],
        cookie_secure=bool(raw.get("cookie_secure", True)),
    )
