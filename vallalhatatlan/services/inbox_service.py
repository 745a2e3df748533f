"""
vallalhatatlan.services.inbox_service — Reader ↔ editor conversations
=======================================================================

Every reader has at most one conversation (``conversations.user_id`` is
unique).  It is created lazily the first time the reader opens the inbox
or writes a message.  Admins see all conversations; readers only their own.

Creation is an insert guarded by the unique constraint rather than a bare
check-then-insert, so two concurrent first requests from the same reader
still end with exactly one row.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vallalhatatlan.constants import (
    INBOX_LIST_DEFAULT,
    INBOX_LIST_MAX,
    INBOX_LIST_MIN,
    MAX_MESSAGE_CHARS,
)
from vallalhatatlan.database.engine import get_session
from vallalhatatlan.database.models import Conversation, Message, SenderRole
from vallalhatatlan.errors import ApiError, AuthFailure, InboxFailure

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------
def get_conversation_for_user(session: Session, user_id: str) -> Conversation | None:
    return session.scalars(
        select(Conversation).where(Conversation.user_id == user_id)
    ).first()


def create_conversation_if_missing(engine: Engine, user_id: str) -> str:
    """Return the reader's conversation id, inserting the row if absent.

    Idempotent: repeated calls for the same *user_id* return the same id.
    """
    try:
        with get_session(engine) as session:
            existing = session.scalar(
                select(Conversation.id).where(Conversation.user_id == user_id)
            )
            if existing is not None:
                return existing

            convo = Conversation(user_id=user_id)
            session.add(convo)
            session.flush()
            created = convo.id
    except IntegrityError:
        # The unique constraint on user_id means another request inserted first.
        logger.info("Conversation insert for %s lost a race; reading the winner", user_id)
        with get_session(engine) as session:
            winner = session.scalar(
                select(Conversation.id).where(Conversation.user_id == user_id)
            )
        if winner is None:
            raise RuntimeError(f"conversation for {user_id} vanished after conflict")
        return winner

    logger.info("Created conversation %s for user %s", created, user_id)
    return created


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return INBOX_LIST_DEFAULT
    return min(INBOX_LIST_MAX, max(INBOX_LIST_MIN, limit))


def list_conversations(session: Session, limit: int | None = None) -> list[Conversation]:
    """Admin view: most recently active first, *limit* clamped to [1, 200]."""
    return list(session.scalars(
        select(Conversation)
        .order_by(Conversation.last_message_at.desc().nulls_last(), Conversation.created_at.desc())
        .limit(clamp_limit(limit))
    ).all())


def is_conversation_owner(session: Session, conversation_id: str, user_id: str) -> bool:
    owner = session.scalar(
        select(Conversation.user_id).where(Conversation.id == conversation_id)
    )
    return owner is not None and owner == user_id


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------
def list_messages(
    engine: Engine,
    conversation_id: str,
    *,
    user_id: str,
    is_admin: bool,
    now: datetime | None = None,
) -> list[dict]:
    """Return the thread oldest-first and stamp the caller's read marker.

    Raises
    ------
    ApiError
        ``forbidden`` if a non-admin asks for someone else's conversation.
    """
    now = now or datetime.now(UTC)
    with get_session(engine) as session:
        if not is_admin and not is_conversation_owner(session, conversation_id, user_id):
            raise ApiError(AuthFailure.FORBIDDEN)

        marker = (
            {"last_admin_read_at": now} if is_admin else {"last_user_read_at": now}
        )
        session.execute(
            update(Conversation).where(Conversation.id == conversation_id).values(**marker)
        )

        rows = session.scalars(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        ).all()
        return [m.to_dict() for m in rows]


def clean_body(raw: str | None) -> str:
    """Trim and cap a message body; raises ``missing_body`` if empty."""
    body = (raw or "").strip()[:MAX_MESSAGE_CHARS]
    if not body:
        raise ApiError(InboxFailure.MISSING_BODY)
    return body


def post_message(
    engine: Engine,
    *,
    user_id: str,
    is_admin: bool,
    conversation_id: str | None,
    body: str | None,
    now: datetime | None = None,
) -> str:
    """Append a message and bump ``last_message_at``.

    A reader without a conversation id writes into their own (created on
    demand); an admin must name the conversation.  Returns the
    conversation id written to.
    """
    text = clean_body(body)
    now = now or datetime.now(UTC)

    if is_admin:
        if not conversation_id:
            raise ApiError(InboxFailure.MISSING_CONVERSATION)
    elif not conversation_id:
        conversation_id = create_conversation_if_missing(engine, user_id)

    with get_session(engine) as session:
        if not is_admin and not is_conversation_owner(session, conversation_id, user_id):
            raise ApiError(AuthFailure.FORBIDDEN)
        if is_admin and session.get(Conversation, conversation_id) is None:
            raise ApiError(InboxFailure.MISSING_CONVERSATION)

        session.add(Message(
            conversation_id=conversation_id,
            sender_role=SenderRole.ADMIN if is_admin else SenderRole.USER,
            user_id=None if is_admin else user_id,
            body=text,
            created_at=now,
        ))
        session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(last_message_at=now)
        )

    return conversation_id
