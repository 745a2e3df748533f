"""
vallalhatatlan.services.mail_service — Sign-in email via Resend
=================================================================

Without ``RESEND_API_KEY`` / ``EMAIL_FROM`` the link is only logged, which
is how local development signs in.
"""

from __future__ import annotations

import html
import logging
import os

import httpx

logger = logging.getLogger(__name__)

RESEND_API = "https://api.resend.com/emails"
SIGN_IN_SUBJECT = "Sign in to Vállalhatatlan"


def render_sign_in_html(url: str) -> str:
    safe = html.escape(url, quote=True)
    return (
        "<!doctype html><html lang=\"en\"><head><meta charset=\"utf-8\" />"
        "<title>Sign in</title></head><body>"
        "<h1>Sign in to Vállalhatatlan</h1>"
        "<p>Click the link below to sign in. This link will expire in 15 minutes.</p>"
        f"<p><a href=\"{safe}\">Sign in</a></p>"
        f"<p>Or copy and paste this link into your browser:<br/>{safe}</p>"
        "</body></html>"
    )


async def send_sign_in_link(
    email: str,
    url: str,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Email *url* to *email*; returns False when mail is not configured."""
    api_key = os.getenv("RESEND_API_KEY", "").strip()
    sender = os.getenv("EMAIL_FROM", "").strip()
    if not api_key or not sender:
        logger.warning("Resend not configured; magic link: %s", url)
        return False

    async with httpx.AsyncClient(timeout=10, transport=transport) as client:
        resp = await client.post(
            RESEND_API,
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "from": sender,
                "to": [email],
                "subject": SIGN_IN_SUBJECT,
                "html": render_sign_in_html(url),
                "text": f"Sign in: {url}\n\nThis link expires in 15 minutes.",
            },
        )
    if resp.status_code >= 400:
        logger.error("Resend rejected sign-in mail: %s %s", resp.status_code, resp.text)
        resp.raise_for_status()
    return True
