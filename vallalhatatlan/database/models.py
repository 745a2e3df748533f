"""
vallalhatatlan.database.models — SQLAlchemy 2.0 Data Models
=============================================================

Tables:
- users               — Reader allow-list + profile (one row per entitled email)
- conversations       — One inbox thread per reader (``user_id`` unique)
- messages            — Inbox messages, reader or admin authored
- reader_presence     — One heartbeat row per reader (``user_id`` unique)
- system_control      — Singleton row (id = 1) holding the global mode
- gifts               — Dead-drop gifts revealed exactly once
- public_story_access — Time-boxed teaser windows keyed by hashed IP
- mutation_rate_limit_events — Durable sliding-window throttle state
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid_str() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class SystemMode(enum.StrEnum):
    """Global write switch read before every user-facing mutation."""
    SAFE = "SAFE"
    READ_ONLY = "READ_ONLY"


class SenderRole(enum.StrEnum):
    USER = "user"
    ADMIN = "admin"


# ---------------------------------------------------------------------------
# Users — entitlement allow-list and reader profile
# ---------------------------------------------------------------------------
class ReaderUser(Base):
    """A row per email allowed into the reader.

    The ``id`` is either the identity provider's user id (profile upsert)
    or a generated UUID (magic-link signup).
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    nickname: Mapped[str | None] = mapped_column(String(50), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<ReaderUser id={self.id} email={self.email!r}>"


# ---------------------------------------------------------------------------
# Conversations — exactly one per reader
# ---------------------------------------------------------------------------
class Conversation(Base):
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_admin_read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_user_read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    messages: Mapped[list[Message]] = relationship(
        back_populates="conversation", cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_conversations_user_id"),
        Index("ix_conversations_last_message_at", "last_message_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": _iso(self.created_at),
            "last_message_at": _iso(self.last_message_at),
            "last_admin_read_at": _iso(self.last_admin_read_at),
            "last_user_read_at": _iso(self.last_user_read_at),
        }

    def __repr__(self) -> str:
        return f"<Conversation id={self.id} user={self.user_id}>"


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_role: Mapped[SenderRole] = mapped_column(
        Enum(SenderRole, name="sender_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    user_id: Mapped[str | None] = mapped_column(String(36), default=None)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    conversation: Mapped[Conversation] = relationship(back_populates="messages")

    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_role": self.sender_role.value,
            "user_id": self.user_id,
            "body": self.body,
            "created_at": _iso(self.created_at),
            "read_at": _iso(self.read_at),
        }

    def __repr__(self) -> str:
        return f"<Message id={self.id} convo={self.conversation_id} role={self.sender_role}>"


# ---------------------------------------------------------------------------
# Presence — heartbeat per reader, "online" is derived
# ---------------------------------------------------------------------------
class ReaderPresence(Base):
    __tablename__ = "reader_presence"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), default=None)
    last_heartbeat: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_reader_presence_user_id"),
        Index("ix_reader_presence_last_heartbeat", "last_heartbeat"),
    )

    def __repr__(self) -> str:
        return f"<ReaderPresence user={self.user_id} ts={self.last_heartbeat}>"


# ---------------------------------------------------------------------------
# System control — singleton (id = 1)
# ---------------------------------------------------------------------------
SYSTEM_CONTROL_ID = 1


class SystemControl(Base):
    __tablename__ = "system_control"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    mode: Mapped[SystemMode] = mapped_column(
        Enum(SystemMode, name="system_mode"), nullable=False, default=SystemMode.SAFE
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    updated_by: Mapped[str | None] = mapped_column(String(320), default=None)

    __table_args__ = (
        CheckConstraint(f"id = {SYSTEM_CONTROL_ID}", name="ck_system_control_singleton"),
    )

    def __repr__(self) -> str:
        return f"<SystemControl mode={self.mode} by={self.updated_by!r}>"


# ---------------------------------------------------------------------------
# Gifts — dead-drop reveal
# ---------------------------------------------------------------------------
class Gift(Base):
    """Created out of band; flips ``revealed`` false → true exactly once."""
    __tablename__ = "gifts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid_str)
    revealed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reveal_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    secret_token: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Gift id={self.id} revealed={self.revealed}>"


# ---------------------------------------------------------------------------
# Public story access — teaser window per (hashed IP, slug)
# ---------------------------------------------------------------------------
class PublicStoryAccess(Base):
    __tablename__ = "public_story_access"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ip_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    story_slug: Mapped[str] = mapped_column(String(200), nullable=False)
    first_access_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    page_views: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    user_agent: Mapped[str | None] = mapped_column(String(512), default=None)

    __table_args__ = (
        UniqueConstraint("ip_hash", "story_slug", name="uq_public_story_access_ip_slug"),
    )

    def __repr__(self) -> str:
        return f"<PublicStoryAccess slug={self.story_slug!r} views={self.page_views}>"


# ---------------------------------------------------------------------------
# MutationRateLimitEvent — durable events for per-actor write throttling
# ---------------------------------------------------------------------------
class MutationRateLimitEvent(Base):
    __tablename__ = "mutation_rate_limit_events"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_mutation_rate_limit_actor_ts", "actor_id", timestamp.desc()),
        Index("ix_mutation_rate_limit_ts", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<MutationRateLimitEvent actor={self.actor_id!r} ts={self.timestamp}>"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
