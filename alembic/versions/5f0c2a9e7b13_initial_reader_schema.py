"""Initial reader schema

Revision ID: 5f0c2a9e7b13
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5f0c2a9e7b13"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

system_mode = sa.Enum("SAFE", "READ_ONLY", name="system_mode")
sender_role = sa.Enum("user", "admin", name="sender_role")


def upgrade() -> None:
    """Create every table and seed the system control singleton."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("nickname", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "conversations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_admin_read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_user_read_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", name="uq_conversations_user_id"),
    )
    op.create_index(
        "ix_conversations_last_message_at", "conversations", ["last_message_at"]
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "conversation_id",
            sa.String(36),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_role", sender_role, nullable=False),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_messages_conversation_created", "messages", ["conversation_id", "created_at"]
    )

    op.create_table(
        "reader_presence",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("last_heartbeat", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", name="uq_reader_presence_user_id"),
    )
    op.create_index(
        "ix_reader_presence_last_heartbeat", "reader_presence", ["last_heartbeat"]
    )

    system_control = op.create_table(
        "system_control",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("mode", system_mode, nullable=False, server_default="SAFE"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_by", sa.String(320), nullable=True),
        sa.CheckConstraint("id = 1", name="ck_system_control_singleton"),
    )
    op.bulk_insert(system_control, [{"id": 1, "mode": "SAFE", "updated_by": "migration"}])

    op.create_table(
        "gifts",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("revealed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reveal_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("secret_token", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "public_story_access",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ip_hash", sa.String(64), nullable=False),
        sa.Column("story_slug", sa.String(200), nullable=False),
        sa.Column("first_access_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("page_views", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.UniqueConstraint("ip_hash", "story_slug", name="uq_public_story_access_ip_slug"),
    )

    op.create_table(
        "mutation_rate_limit_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_mutation_rate_limit_actor_ts",
        "mutation_rate_limit_events",
        ["actor_id", sa.text("timestamp DESC")],
    )
    op.create_index(
        "ix_mutation_rate_limit_ts", "mutation_rate_limit_events", ["timestamp"]
    )


def downgrade() -> None:
    """Drop every reader table."""
    op.drop_index("ix_mutation_rate_limit_ts", table_name="mutation_rate_limit_events")
    op.drop_index("ix_mutation_rate_limit_actor_ts", table_name="mutation_rate_limit_events")
    op.drop_table("mutation_rate_limit_events")
    op.drop_table("public_story_access")
    op.drop_table("gifts")
    op.drop_table("system_control")
    op.drop_index("ix_reader_presence_last_heartbeat", table_name="reader_presence")
    op.drop_table("reader_presence")
    op.drop_index("ix_messages_conversation_created", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_conversations_last_message_at", table_name="conversations")
    op.drop_table("conversations")
    op.drop_table("users")
    system_mode.drop(op.get_bind(), checkfirst=True)
    sender_role.drop(op.get_bind(), checkfirst=True)
