"""
tests/test_inbox.py — Conversations and messages
==================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine, event, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vallalhatatlan.database.models import Base, Conversation, Message, SenderRole
from vallalhatatlan.errors import ApiError, AuthFailure, InboxFailure
from vallalhatatlan.services import inbox_service


def _count_conversations(engine, user_id: str) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.count()).select_from(Conversation).where(Conversation.user_id == user_id)
        )


class TestCreateConversation:

    def test_idempotent(self, db_engine):
        first = inbox_service.create_conversation_if_missing(db_engine, "u1")
        second = inbox_service.create_conversation_if_missing(db_engine, "u1")
        assert first == second
        assert _count_conversations(db_engine, "u1") == 1

    def test_unique_per_user(self, db_engine):
        inbox_service.create_conversation_if_missing(db_engine, "u1")
        with Session(db_engine) as session:
            session.add(Conversation(user_id="u1"))
            with pytest.raises(IntegrityError):
                session.commit()

    def test_lost_race_returns_winning_row(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}")
        Base.metadata.create_all(engine)

        def competitor(session, flush_context, instances):
            with engine.begin() as conn:
                conn.execute(insert(Conversation).values(id="winner", user_id="u1"))

        event.listen(Session, "before_flush", competitor, once=True)
        try:
            result = inbox_service.create_conversation_if_missing(engine, "u1")
        finally:
            if event.contains(Session, "before_flush", competitor):
                event.remove(Session, "before_flush", competitor)

        assert result == "winner"
        assert _count_conversations(engine, "u1") == 1
        engine.dispose()


class TestListConversations:

    @pytest.mark.parametrize("raw, expected", [(None, 50), (0, 1), (-3, 1), (10, 10), (500, 200)])
    def test_clamp_limit(self, raw, expected):
        assert inbox_service.clamp_limit(raw) == expected

    def test_most_recent_first_nulls_last(self, db_engine, db_session):
        now = datetime.now(UTC)
        with Session(db_engine) as session:
            session.add_all([
                Conversation(id="old", user_id="a", last_message_at=now - timedelta(days=2)),
                Conversation(id="silent", user_id="b", last_message_at=None),
                Conversation(id="new", user_id="c", last_message_at=now),
            ])
            session.commit()

        ids = [c.id for c in inbox_service.list_conversations(db_session)]
        assert ids == ["new", "old", "silent"]
        assert len(inbox_service.list_conversations(db_session, limit=1)) == 1


class TestMessages:

    def test_reader_posts_into_auto_created_conversation(self, db_engine):
        cid = inbox_service.post_message(
            db_engine, user_id="u1", is_admin=False, conversation_id=None, body="  Szia!  "
        )
        assert cid == inbox_service.create_conversation_if_missing(db_engine, "u1")

        messages = inbox_service.list_messages(db_engine, cid, user_id="u1", is_admin=False)
        assert len(messages) == 1
        assert messages[0]["body"] == "Szia!"
        assert messages[0]["sender_role"] == "user"
        assert messages[0]["user_id"] == "u1"

    def test_body_truncated_to_limit(self, db_engine):
        cid = inbox_service.post_message(
            db_engine, user_id="u1", is_admin=False, conversation_id=None, body="x" * 2500
        )
        with Session(db_engine) as session:
            body = session.scalar(select(Message.body).where(Message.conversation_id == cid))
        assert len(body) == 2000

    @pytest.mark.parametrize("body", [None, "", "   \n\t"])
    def test_empty_body_rejected(self, db_engine, body):
        with pytest.raises(ApiError) as exc_info:
            inbox_service.post_message(
                db_engine, user_id="u1", is_admin=False, conversation_id=None, body=body
            )
        assert exc_info.value.code is InboxFailure.MISSING_BODY
        assert _count_conversations(db_engine, "u1") == 0

    def test_reader_cannot_post_to_foreign_conversation(self, db_engine):
        cid = inbox_service.create_conversation_if_missing(db_engine, "owner")
        with pytest.raises(ApiError) as exc_info:
            inbox_service.post_message(
                db_engine, user_id="intruder", is_admin=False, conversation_id=cid, body="hi"
            )
        assert exc_info.value.code is AuthFailure.FORBIDDEN

    def test_admin_must_name_conversation(self, db_engine):
        with pytest.raises(ApiError) as exc_info:
            inbox_service.post_message(
                db_engine, user_id="admin", is_admin=True, conversation_id=None, body="hi"
            )
        assert exc_info.value.code is InboxFailure.MISSING_CONVERSATION

    def test_admin_reply_stamps_last_message_at(self, db_engine):
        cid = inbox_service.create_conversation_if_missing(db_engine, "u1")
        when = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)
        inbox_service.post_message(
            db_engine, user_id="admin", is_admin=True, conversation_id=cid, body="Válasz", now=when
        )
        with Session(db_engine) as session:
            convo = session.get(Conversation, cid)
            msg = session.scalars(select(Message)).one()
            assert convo.last_message_at.replace(tzinfo=UTC) == when
            assert msg.sender_role is SenderRole.ADMIN
            assert msg.user_id is None

    def test_read_markers(self, db_engine):
        cid = inbox_service.create_conversation_if_missing(db_engine, "u1")
        inbox_service.list_messages(db_engine, cid, user_id="u1", is_admin=False)
        with Session(db_engine) as session:
            convo = session.get(Conversation, cid)
            assert convo.last_user_read_at is not None
            assert convo.last_admin_read_at is None

        inbox_service.list_messages(db_engine, cid, user_id="admin", is_admin=True)
        with Session(db_engine) as session:
            assert session.get(Conversation, cid).last_admin_read_at is not None

    def test_messages_oldest_first(self, db_engine):
        cid = inbox_service.create_conversation_if_missing(db_engine, "u1")
        base = datetime(2026, 10, 1, tzinfo=UTC)
        for i, offset in enumerate((5, 1, 3)):
            inbox_service.post_message(
                db_engine, user_id="u1", is_admin=False, conversation_id=cid,
                body=f"m{i}", now=base + timedelta(minutes=offset),
            )
        bodies = [m["body"] for m in inbox_service.list_messages(db_engine, cid, user_id="u1", is_admin=False)]
        assert bodies == ["m1", "m2", "m0"]

    def test_non_owner_cannot_read(self, db_engine):
        cid = inbox_service.create_conversation_if_missing(db_engine, "owner")
        with pytest.raises(ApiError) as exc_info:
            inbox_service.list_messages(db_engine, cid, user_id="intruder", is_admin=False)
        assert exc_info.value.status_code == 403
