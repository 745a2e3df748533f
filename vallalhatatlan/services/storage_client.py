"""
vallalhatatlan.services.storage_client — Backblaze B2 private downloads
=========================================================================

The audiobook files sit in a private B2 bucket.  Downloading one takes
two credentials:

1. An **account authorization** (``b2_authorize_account``) — cached for
   12 hours.
2. A **download authorization** scoped to the file name — cached for one
   hour and refreshed 30 seconds before it lapses.

:meth:`B2StorageClient.open_stream` returns an *open* streamed
:class:`httpx.Response`; the caller must ``aclose()`` it.
"""

from __future__ import annotations

import base64
import logging
import os
import time
from dataclasses import dataclass
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

B2_AUTHORIZE_URL = "https://api.backblazeb2.com/b2api/v2/b2_authorize_account"
ACCOUNT_TTL_SECONDS = 12 * 60 * 60
DOWNLOAD_AUTH_TTL_SECONDS = 60 * 60
DOWNLOAD_AUTH_REFRESH_MARGIN = 30


class StorageError(RuntimeError):
    """Any failure talking to B2; surfaced to clients as a 502."""


@dataclass(slots=True)
class _AccountAuth:
    authorization_token: str
    api_url: str
    download_url: str
    expires_at: float


class B2StorageClient:
    """Streams files out of a private B2 bucket."""

    def __init__(
        self,
        *,
        key_id: str,
        app_key: str,
        bucket_id: str,
        bucket_name: str,
        transport: httpx.AsyncBaseTransport | None = None,
        clock=time.time,
    ) -> None:
        self.key_id = key_id
        self.app_key = app_key
        self.bucket_id = bucket_id
        self.bucket_name = bucket_name
        self._transport = transport
        self._clock = clock
        self._account: _AccountAuth | None = None
        self._download_auth: dict[str, tuple[str, float]] = {}

    @classmethod
    def from_env(cls) -> B2StorageClient:
        values = {
            name: os.getenv(name, "").strip()
            for name in ("B2_KEY_ID", "B2_APP_KEY", "B2_BUCKET_ID", "B2_BUCKET_NAME")
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise StorageError("B2 storage is not configured: missing " + ", ".join(missing))
        return cls(
            key_id=values["B2_KEY_ID"],
            app_key=values["B2_APP_KEY"],
            bucket_id=values["B2_BUCKET_ID"],
            bucket_name=values["B2_BUCKET_NAME"],
        )

    def _client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, **kwargs)

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------
    async def _authorize_account(self) -> _AccountAuth:
        if self._account is not None and self._clock() < self._account.expires_at:
            return self._account

        basic = base64.b64encode(f"{self.key_id}:{self.app_key}".encode()).decode()
        try:
            async with self._client(timeout=10) as client:
                resp = await client.get(B2_AUTHORIZE_URL, headers={"Authorization": f"Basic {basic}"})
        except httpx.HTTPError as exc:
            raise StorageError(f"B2 authorize request failed: {exc}") from exc
        if resp.status_code != 200:
            raise StorageError(f"B2 authorize failed: {resp.status_code} {resp.text}")

        try:
            data = resp.json()
            self._account = _AccountAuth(
                authorization_token=data["authorizationToken"],
                api_url=data["apiUrl"],
                download_url=data["downloadUrl"],
                expires_at=self._clock() + ACCOUNT_TTL_SECONDS,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"B2 authorize returned a malformed body: {exc!r}") from exc
        logger.info("B2 account authorized (api=%s)", self._account.api_url)
        return self._account

    async def get_download_authorization(
        self, file_name: str, seconds: int = DOWNLOAD_AUTH_TTL_SECONDS
    ) -> str:
        now = self._clock()
        cached = self._download_auth.get(file_name)
        if cached and cached[1] - DOWNLOAD_AUTH_REFRESH_MARGIN > now:
            return cached[0]

        account = await self._authorize_account()
        try:
            async with self._client(timeout=10) as client:
                resp = await client.post(
                    f"{account.api_url}/b2api/v2/b2_get_download_authorization",
                    headers={"Authorization": account.authorization_token},
                    json={
                        "bucketId": self.bucket_id,
                        "fileNamePrefix": file_name,
                        "validDurationInSeconds": seconds,
                    },
                )
        except httpx.HTTPError as exc:
            raise StorageError(f"B2 get_download_authorization request failed: {exc}") from exc
        if resp.status_code != 200:
            raise StorageError(
                f"B2 get_download_authorization failed: {resp.status_code} {resp.text}"
            )

        try:
            token = resp.json()["authorizationToken"]
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(
                f"B2 get_download_authorization returned a malformed body: {exc!r}"
            ) from exc
        self._download_auth[file_name] = (token, now + seconds)
        return token

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------
    def file_url(self, download_url: str, file_name: str) -> str:
        encoded = "/".join(quote(seg, safe="") for seg in file_name.split("/"))
        return f"{download_url}/file/{quote(self.bucket_name, safe='')}/{encoded}"

    async def open_stream(self, file_name: str, range_header: str | None = None) -> httpx.Response:
        """Start a streamed GET for *file_name*, forwarding *range_header*.

        Raises
        ------
        StorageError
            On credential failures or a non-2xx download status.
        """
        account = await self._authorize_account()
        download_auth = await self.get_download_authorization(file_name)
        headers = {"Authorization": download_auth}
        if range_header:
            headers["Range"] = range_header

        client = self._client(timeout=None)
        url = self.file_url(account.download_url, file_name)
        try:
            resp = await client.send(client.build_request("GET", url, headers=headers), stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            raise StorageError(f"B2 download request failed: {exc}") from exc

        if resp.status_code not in (200, 206):
            body = await resp.aread()
            await resp.aclose()
            await client.aclose()
            raise StorageError(
                f"B2 download failed: status={resp.status_code} "
                f"bucket={self.bucket_name} fileName={file_name} body={body[:200]!r}"
            )

        # Close the owning client together with the response.
        resp.extensions["owning_client"] = client
        return resp


async def close_stream(resp: httpx.Response) -> None:
    await resp.aclose()
    client = resp.extensions.get("owning_client")
    if client is not None:
        await client.aclose()
