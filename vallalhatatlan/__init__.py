"""
Vállalhatatlan — Reader API for a Limited-Edition Book
========================================================
Backs the book site: entitlement-gated reader content, a one-conversation
per reader inbox, presence heartbeats, the dead-drop gift reveal, the
public teaser windows, and the private audio proxy.  A single global
system mode (``SAFE`` / ``READ_ONLY``) gates every user-facing write.

Package layout::

    vallalhatatlan/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Shared constants + pure helpers
    ├── errors.py          # Per-component error codes + ApiError
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # System control singleton seeder
    ├── services/
    │   ├── identity_service.py     # Bearer / cookie identity, token signing
    │   ├── entitlement_service.py  # Allow-list lookups
    │   ├── content_service.py      # Story metadata + text files
    │   ├── playlist_service.py     # Audio playlist JSON files
    │   ├── inbox_service.py        # Conversations + messages
    │   ├── presence_service.py     # Heartbeats + online count
    │   ├── system_service.py       # SAFE / READ_ONLY mode
    │   ├── gift_service.py         # Dead-drop gift reveal
    │   ├── public_story_service.py # Time-boxed public teaser access
    │   └── storage_client.py       # Backblaze B2 private file streaming
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Dependency injection + write guard
        ├── auth.py        # Magic link → session cookie
        ├── rate_limit.py  # Per-actor mutation throttle
        └── routes/        # Reader, inbox, presence, system, gifts, …
"""

__version__ = "0.1.0"
