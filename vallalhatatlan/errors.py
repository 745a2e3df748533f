"""
vallalhatatlan.errors — API Error Codes
=========================================

Every failure the API reports is a string code in a JSON body::

    {"error": "already_revealed", "ok": false}

Each component owns a closed :class:`enum.StrEnum` of the codes it can
produce, and every code has exactly one default HTTP status in
:data:`STATUS_BY_CODE`.  Services and dependencies raise :class:`ApiError`;
``vallalhatatlan.api.main`` renders it.
"""

from __future__ import annotations

import enum
from typing import Any


class AuthFailure(enum.StrEnum):
    MISSING_TOKEN = "missing_token"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"


class ServerFailure(enum.StrEnum):
    SERVER_ERROR = "server_error"
    SERVER_MISCONFIGURED = "server_misconfigured"


class AccessFailure(enum.StrEnum):
    NO_ACCESS = "no_access"
    NO_EMAIL = "no_email"


class InboxFailure(enum.StrEnum):
    MISSING_BODY = "missing_body"
    MISSING_CONVERSATION = "missing_conversation"


class GiftFailure(enum.StrEnum):
    GIFT_NOT_FOUND = "gift_not_found"
    ALREADY_REVEALED = "already_revealed"
    EXPIRED = "expired"
    DB_UPDATE_FAILED = "db_update_failed"


class SystemFailure(enum.StrEnum):
    READ_ONLY = "read_only"
    NOT_INITIALIZED = "system_not_initialized"


class ContentFailure(enum.StrEnum):
    INVALID_SLUG = "invalid_slug"
    STORY_NOT_FOUND = "story_not_found"
    MISSING_IP = "missing_ip"
    NO_PUBLIC_ACCESS = "no_public_access"
    ACCESS_EXPIRED = "access_expired"
    PLAYLIST_NOT_FOUND = "playlist_not_found"


class ProfileFailure(enum.StrEnum):
    INVALID_NICKNAME = "invalid_nickname"
    USER_NOT_FOUND = "user_not_found"
    MISSING_USER_ID = "missing_user_id"


class RateFailure(enum.StrEnum):
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


ErrorCode = (
    AuthFailure
    | ServerFailure
    | AccessFailure
    | InboxFailure
    | GiftFailure
    | SystemFailure
    | ContentFailure
    | ProfileFailure
    | RateFailure
)

STATUS_BY_CODE: dict[ErrorCode, int] = {
    AuthFailure.MISSING_TOKEN: 401,
    AuthFailure.UNAUTHENTICATED: 401,
    AuthFailure.FORBIDDEN: 403,
    ServerFailure.SERVER_ERROR: 500,
    ServerFailure.SERVER_MISCONFIGURED: 500,
    AccessFailure.NO_ACCESS: 403,
    AccessFailure.NO_EMAIL: 403,
    InboxFailure.MISSING_BODY: 400,
    InboxFailure.MISSING_CONVERSATION: 400,
    GiftFailure.GIFT_NOT_FOUND: 404,
    GiftFailure.ALREADY_REVEALED: 400,
    GiftFailure.EXPIRED: 400,
    GiftFailure.DB_UPDATE_FAILED: 500,
    SystemFailure.READ_ONLY: 503,
    SystemFailure.NOT_INITIALIZED: 500,
    ContentFailure.INVALID_SLUG: 400,
    ContentFailure.STORY_NOT_FOUND: 404,
    ContentFailure.MISSING_IP: 400,
    ContentFailure.NO_PUBLIC_ACCESS: 403,
    ContentFailure.ACCESS_EXPIRED: 403,
    ContentFailure.PLAYLIST_NOT_FOUND: 404,
    ProfileFailure.INVALID_NICKNAME: 400,
    ProfileFailure.USER_NOT_FOUND: 404,
    ProfileFailure.MISSING_USER_ID: 400,
    RateFailure.RATE_LIMIT_EXCEEDED: 429,
}


class ApiError(Exception):
    """A taxonomy failure on its way to becoming a JSON error response.

    Parameters
    ----------
    code:
        One member of a component failure enum.
    status_code:
        Overrides the default from :data:`STATUS_BY_CODE`.
    body:
        Extra JSON fields merged next to ``error`` (e.g. ``{"ok": False}``).
    headers:
        Extra response headers.
    """

    def __init__(
        self,
        code: ErrorCode,
        *,
        status_code: int | None = None,
        body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code
        self.status_code = status_code or STATUS_BY_CODE[code]
        self.body = body or {}
        self.headers = headers or {}
        super().__init__(code.value)

    def to_dict(self) -> dict[str, Any]:
        return {**self.body, "error": self.code.value}
