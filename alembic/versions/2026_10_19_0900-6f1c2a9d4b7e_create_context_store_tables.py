"""create context store tables

Revision ID: 6f1c2a9d4b7e
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "6f1c2a9d4b7e"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_VIEWS = {
    "active_languages": "languages",
    "active_users": "users",
    "active_chats": "chats",
    "active_messages": "messages",
}


def upgrade() -> None:
    """Upgrade schema: languages, users, chats, messages and their active_* views."""
    op.create_table(
        "languages",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_languages_name_active",
        "languages",
        ["name"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "users",
        sa.Column("external_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("language_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("external_id"),
        sa.ForeignKeyConstraint(["language_id"], ["languages.id"]),
        sa.CheckConstraint(
            "deleted_at IS NULL OR deleted_at >= created_at",
            name="chk_users_deleted_after_created",
        ),
    )
    op.create_index(
        "idx_users_language_id",
        "users",
        ["language_id"],
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "chats",
        sa.Column("external_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("external_id"),
        sa.CheckConstraint(
            "deleted_at IS NULL OR deleted_at >= created_at",
            name="chk_chats_deleted_after_created",
        ),
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("user_external_id", sa.BigInteger(), nullable=False),
        sa.Column("chat_external_id", sa.BigInteger(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("model_response", sa.Text(), nullable=True),
        sa.Column(
            "is_cleared", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_external_id"], ["users.external_id"]),
        sa.ForeignKeyConstraint(["chat_external_id"], ["chats.external_id"]),
        sa.CheckConstraint(
            "deleted_at IS NULL OR deleted_at >= created_at",
            name="chk_messages_deleted_after_created",
        ),
    )
    op.create_index(
        "idx_messages_user_external_id",
        "messages",
        ["user_external_id"],
        postgresql_where=sa.text("deleted_at IS NULL"),
    )
    op.create_index(
        "idx_messages_chat_external_id",
        "messages",
        ["chat_external_id"],
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    for view, table in ACTIVE_VIEWS.items():
        op.execute(f"CREATE VIEW {view} AS SELECT * FROM {table} WHERE deleted_at IS NULL")


def downgrade() -> None:
    """Downgrade schema: drop views, then tables in dependency order."""
    for view in ACTIVE_VIEWS:
        op.execute(f"DROP VIEW IF EXISTS {view}")
    op.drop_index("idx_messages_chat_external_id", table_name="messages")
    op.drop_index("idx_messages_user_external_id", table_name="messages")
    op.drop_table("messages")
    op.drop_table("chats")
    op.drop_index("idx_users_language_id", table_name="users")
    op.drop_table("users")
    op.drop_index("uq_languages_name_active", table_name="languages")
    op.drop_table("languages")
