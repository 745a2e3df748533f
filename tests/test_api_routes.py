"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Auth guards, response shapes and error bodies of the reader, inbox, admin,
presence, system, gift, profile and playlist endpoints.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import delete, func, select

from conftest import ADMIN_EMAIL, READER_EMAIL, add_reader, auth
from vallalhatatlan.database.models import Gift, ReaderUser, SystemControl
from vallalhatatlan.services.content_service import humanize, ordered_stories
from vallalhatatlan.services.identity_service import Identity
from vallalhatatlan.services.inbox_service import create_conversation_if_missing


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
class TestAuthGuards:

    def test_missing_token(self, client):
        resp = client.get("/api/inbox")
        assert resp.status_code == 401
        assert resp.json() == {"error": "missing_token"}

    def test_unknown_token(self, client):
        resp = client.get("/api/inbox", headers=auth("forged"))
        assert resp.status_code == 401
        assert resp.json() == {"error": "unauthenticated"}

    def test_reader_cannot_use_admin_routes(self, client):
        resp = client.get("/api/admin/inbox", headers=auth("reader-token"))
        assert resp.status_code == 403
        assert resp.json() == {"error": "forbidden"}

    def test_admin_mode_change_requires_admin(self, client):
        resp = client.put("/api/admin/system/mode", json={"mode": "READ_ONLY"}, headers=auth("reader-token"))
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Reader entitlement
# ---------------------------------------------------------------------------
class TestReaderAccess:

    def test_missing_token_body(self, client):
        resp = client.get("/api/reader-access")
        assert resp.status_code == 401
        assert resp.json() == {"hasAccess": False, "error": "missing_token"}

    def test_unknown_token_body(self, client):
        resp = client.get("/api/reader-access", headers=auth("forged"))
        assert resp.status_code == 401
        assert resp.json() == {"hasAccess": False, "error": "unauthenticated"}

    def test_identity_without_email(self, client):
        resp = client.get("/api/reader-access", headers=auth("noemail-token"))
        assert resp.status_code == 403
        assert resp.json() == {"hasAccess": False, "error": "no_email"}

    def test_not_on_allow_list(self, client):
        resp = client.get("/api/reader-access", headers=auth("reader-token"))
        assert resp.status_code == 200
        assert resp.json() == {"hasAccess": False, "email": READER_EMAIL}

    def test_on_allow_list(self, client, db_engine):
        add_reader(db_engine)
        resp = client.get("/api/reader-access", headers=auth("reader-token"))
        assert resp.json() == {"hasAccess": True, "email": READER_EMAIL}

    def test_email_case_is_ignored(self, client, db_engine, identity_provider):
        add_reader(db_engine)
        identity_provider.users["shout-token"] = Identity(id="r9", email="  READER@Example.COM ")
        resp = client.get("/api/reader-access", headers=auth("shout-token"))
        assert resp.json() == {"hasAccess": True, "email": READER_EMAIL}

    def test_cookie_is_not_accepted(self, client):
        client.cookies.set("session", "anything")
        resp = client.get("/api/reader-access")
        assert resp.json()["error"] == "missing_token"


class TestReaderStories:

    def test_not_entitled(self, client):
        resp = client.get("/api/reader-stories", headers=auth("reader-token"))
        assert resp.status_code == 403
        assert resp.json() == {"error": "no_access"}

    def test_ordered_payload(self, client, db_engine, content_dirs):
        stories_dir, _ = content_dirs
        first_text = next(s for s in ordered_stories() if s.kind != "cover")
        (stories_dir / f"{first_text.slug}.txt").write_text("Egyszer volt.", encoding="utf-8")
        add_reader(db_engine)

        resp = client.get("/api/reader-stories", headers=auth("reader-token"))
        assert resp.status_code == 200
        stories = resp.json()["stories"]
        assert [s["slug"] for s in stories] == [s.slug for s in ordered_stories()]
        by_slug = {s["slug"]: s for s in stories}
        assert by_slug[first_text.slug]["text"] == "Egyszer volt."


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------
class TestInboxRoutes:

    def test_empty_inbox(self, client):
        resp = client.get("/api/inbox", headers=auth("reader-token"))
        assert resp.json() == {"conversation": None, "isAdmin": False}

    def test_admin_flag(self, client):
        assert client.get("/api/inbox", headers=auth("admin-token")).json()["isAdmin"] is True

    def test_open_is_idempotent(self, client):
        first = client.post("/api/inbox", headers=auth("reader-token")).json()["conversationId"]
        second = client.post("/api/inbox", headers=auth("reader-token")).json()["conversationId"]
        assert first == second
        convo = client.get("/api/inbox", headers=auth("reader-token")).json()["conversation"]
        assert convo["id"] == first
        assert convo["user_id"] == "reader-1"

    def test_reader_and_admin_exchange(self, client):
        resp = client.post("/api/inbox/messages", json={"body": "  Szia!  "}, headers=auth("reader-token"))
        assert resp.status_code == 200
        convo_id = resp.json()["conversationId"]

        reply = client.post(
            "/api/inbox/messages",
            json={"body": "Üdv", "conversationId": convo_id},
            headers=auth("admin-token"),
        )
        assert reply.json() == {"ok": True, "conversationId": convo_id}

        messages = client.get(
            "/api/inbox/messages", params={"conversationId": convo_id}, headers=auth("reader-token")
        ).json()["messages"]
        assert [(m["sender_role"], m["body"]) for m in messages] == [("user", "Szia!"), ("admin", "Üdv")]
        assert messages[1]["user_id"] is None

    def test_read_marker_is_stamped(self, client):
        convo_id = client.post("/api/inbox", headers=auth("reader-token")).json()["conversationId"]
        client.get("/api/inbox/messages", params={"conversationId": convo_id}, headers=auth("admin-token"))
        convo = client.get("/api/inbox", headers=auth("reader-token")).json()["conversation"]
        assert convo["last_admin_read_at"] is not None
        assert convo["last_user_read_at"] is None

    def test_other_reader_is_forbidden(self, client):
        convo_id = client.post("/api/inbox", headers=auth("reader-token")).json()["conversationId"]
        resp = client.get(
            "/api/inbox/messages", params={"conversationId": convo_id}, headers=auth("other-token")
        )
        assert resp.status_code == 403
        resp = client.post(
            "/api/inbox/messages",
            json={"body": "hi", "conversationId": convo_id},
            headers=auth("other-token"),
        )
        assert resp.status_code == 403

    def test_missing_conversation_param(self, client):
        resp = client.get("/api/inbox/messages", headers=auth("reader-token"))
        assert resp.status_code == 400
        assert resp.json() == {"error": "missing_conversation"}

    def test_admin_must_name_conversation(self, client):
        resp = client.post("/api/inbox/messages", json={"body": "hi"}, headers=auth("admin-token"))
        assert resp.status_code == 400
        assert resp.json() == {"error": "missing_conversation"}

    def test_blank_body(self, client):
        resp = client.post("/api/inbox/messages", json={"body": "   "}, headers=auth("reader-token"))
        assert resp.status_code == 400
        assert resp.json() == {"error": "missing_body"}


class TestAdminInbox:

    def test_lists_conversations(self, client, db_engine):
        for user_id in ("u1", "u2", "u3"):
            create_conversation_if_missing(db_engine, user_id)
        resp = client.get("/api/admin/inbox", headers=auth("admin-token"))
        assert resp.status_code == 200
        assert {c["user_id"] for c in resp.json()["conversations"]} == {"u1", "u2", "u3"}

    @pytest.mark.parametrize("limit, expected", [(0, 1), (-5, 1), (2, 2), (500, 3)])
    def test_limit_is_clamped(self, client, db_engine, limit, expected):
        for user_id in ("u1", "u2", "u3"):
            create_conversation_if_missing(db_engine, user_id)
        resp = client.get("/api/admin/inbox", params={"limit": limit}, headers=auth("admin-token"))
        assert len(resp.json()["conversations"]) == expected

    def test_most_recent_activity_first(self, client, db_engine):
        for user_id in ("u1", "u2"):
            create_conversation_if_missing(db_engine, user_id)
        client.post("/api/inbox/messages", json={"body": "first"}, headers=auth("reader-token"))
        convos = client.get("/api/admin/inbox", headers=auth("admin-token")).json()["conversations"]
        assert convos[0]["user_id"] == "reader-1"


# ---------------------------------------------------------------------------
# Presence
# ---------------------------------------------------------------------------
class TestPresenceRoutes:

    def test_heartbeat_requires_bearer(self, client):
        assert client.post("/api/presence").status_code == 401

    def test_count(self, client):
        assert client.get("/api/presence").json() == {"count": 0}
        assert client.post("/api/presence", headers=auth("reader-token")).json() == {"success": True}
        client.post("/api/presence", headers=auth("reader-token"))
        client.post("/api/presence", headers=auth("other-token"))
        assert client.get("/api/presence").json() == {"count": 2}


# ---------------------------------------------------------------------------
# System status
# ---------------------------------------------------------------------------
class TestSystemStatus:

    def test_status_and_headers(self, client):
        resp = client.get("/api/system/status")
        assert resp.status_code == 200
        assert resp.json()["mode"] == "SAFE"
        assert resp.headers["X-System-Mode"] == "SAFE"
        assert resp.headers["Cache-Control"] == "public, s-maxage=30, stale-while-revalidate=60"

    def test_mode_change_shows_up(self, client):
        client.put("/api/admin/system/mode", json={"mode": "READ_ONLY"}, headers=auth("admin-token"))
        body = client.get("/api/system/status").json()
        assert body["mode"] == "READ_ONLY"
        assert body["updatedBy"] == ADMIN_EMAIL

    def test_invalid_mode(self, client):
        resp = client.put("/api/admin/system/mode", json={"mode": "PANIC"}, headers=auth("admin-token"))
        assert resp.status_code == 422

    def test_missing_control_row(self, client, db_session):
        db_session.execute(delete(SystemControl))
        db_session.commit()
        resp = client.get("/api/system/status")
        assert resp.status_code == 500
        assert resp.json() == {"error": "system_not_initialized"}


# ---------------------------------------------------------------------------
# Gifts
# ---------------------------------------------------------------------------
class TestGiftRoutes:

    @pytest.fixture(autouse=True)
    def _gifts(self, db_session):
        past = datetime.now(UTC) - timedelta(days=1)
        db_session.add_all([
            Gift(id="g1", secret_token="PICKUP-1"),
            Gift(id="old", secret_token="PICKUP-2", expires_at=past),
        ])
        db_session.commit()

    def test_reveal_once(self, client):
        first = client.post("/api/gift/g1")
        assert first.status_code == 200
        assert first.json() == {"ok": True, "token": "PICKUP-1"}

        second = client.post("/api/gift/g1")
        assert second.status_code == 400
        assert second.json() == {"ok": False, "error": "already_revealed"}

    def test_unknown_gift(self, client):
        resp = client.post("/api/gift/nope")
        assert resp.status_code == 404
        assert resp.json() == {"ok": False, "error": "gift_not_found"}

    def test_expired_gift(self, client):
        resp = client.post("/api/gift/old")
        assert resp.status_code == 400
        assert resp.json() == {"ok": False, "error": "expired"}


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------
class TestProfileRoutes:

    def test_set_and_read_nickname(self, client):
        resp = client.patch("/api/user/profile", json={"nickname": "  Olvasó  "}, headers=auth("reader-token"))
        assert resp.status_code == 200
        assert resp.json() == {
            "ok": True,
            "profile": {"id": "reader-1", "email": READER_EMAIL, "nickname": "Olvasó"},
        }
        public = client.get("/api/user/profile", params={"userId": "reader-1"})
        assert public.json() == {"ok": True, "profile": {"id": "reader-1", "nickname": "Olvasó"}}

    def test_replaces_magic_link_row_for_same_email(self, client, db_engine, db_session):
        add_reader(db_engine)
        client.patch("/api/user/profile", json={"nickname": "Új"}, headers=auth("reader-token"))
        rows = db_session.scalars(select(ReaderUser).where(ReaderUser.email == READER_EMAIL)).all()
        assert [r.id for r in rows] == ["reader-1"]

    @pytest.mark.parametrize("nickname", ["", "   ", None, "x" * 51])
    def test_invalid_nickname(self, client, nickname):
        resp = client.patch("/api/user/profile", json={"nickname": nickname}, headers=auth("reader-token"))
        assert resp.status_code == 400
        assert resp.json() == {"ok": False, "error": "invalid_nickname"}

    def test_identity_without_email(self, client, db_session):
        resp = client.patch("/api/user/profile", json={"nickname": "x"}, headers=auth("noemail-token"))
        assert resp.status_code == 400
        assert resp.json() == {"ok": False, "error": "no_email"}
        assert db_session.scalar(select(func.count()).select_from(ReaderUser)) == 0

    def test_missing_user_id(self, client):
        resp = client.get("/api/user/profile")
        assert resp.status_code == 400
        assert resp.json() == {"ok": False, "error": "missing_user_id"}

    def test_unknown_user(self, client):
        resp = client.get("/api/user/profile", params={"userId": "ghost"})
        assert resp.status_code == 404
        assert resp.json() == {"ok": False, "error": "user_not_found"}


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------
class TestPlaylistRoutes:

    @pytest.fixture(autouse=True)
    def _playlists(self, content_dirs):
        _, playlists = content_dirs
        tracks = {"tracks": [{"title": "Első", "file": "nyar/01.mp3"}]}
        (playlists / "nyari-esték.json").write_text(json.dumps(tracks), encoding="utf-8")
        (playlists / "broken.json").write_text("{not json", encoding="utf-8")
        (playlists / "notes.txt").write_text("ignored", encoding="utf-8")

    def test_index(self, client):
        resp = client.get("/api/playlists")
        assert resp.json() == {"playlists": [
            {"slug": "broken", "title": humanize("broken")},
            {"slug": "nyari-esték", "title": humanize("nyari-esték")},
        ]}

    def test_single(self, client):
        resp = client.get("/api/playlists/nyari-esték")
        assert resp.status_code == 200
        body = resp.json()
        assert body["slug"] == "nyari-esték"
        assert body["tracks"][0]["file"] == "nyar/01.mp3"

    @pytest.mark.parametrize("slug", ["missing", "broken", ".hidden"])
    def test_not_found(self, client, slug):
        resp = client.get(f"/api/playlists/{slug}")
        assert resp.status_code == 404
        assert resp.json() == {"error": "playlist_not_found"}
