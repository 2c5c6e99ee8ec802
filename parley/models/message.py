"""Message model: one row per exchange (user text plus the model's reply)."""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Text,
    false,
    text,
)
from sqlalchemy.orm import relationship

from parley.db import Base
from parley.models.mixins import BigIntId, CreatedAtMixin, SoftDeleteMixin


class Message(Base, CreatedAtMixin, SoftDeleteMixin):
    """
    Append-only. content is written once; model_response is filled once the
    exchange completes and stays NULL for an exchange that never finished.
    """

    __tablename__ = "messages"

    __table_args__ = (
        CheckConstraint(
            "deleted_at IS NULL OR deleted_at >= created_at",
            name="chk_messages_deleted_after_created",
        ),
        Index(
            "idx_messages_user_external_id",
            "user_external_id",
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index(
            "idx_messages_chat_external_id",
            "chat_external_id",
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    user_external_id = Column(
        BigInteger, ForeignKey("users.external_id"), nullable=False
    )
    chat_external_id = Column(
        BigInteger, ForeignKey("chats.external_id"), nullable=False
    )
    content = Column(Text, nullable=False)
    model_response = Column(Text, nullable=True)
    is_cleared = Column(Boolean, nullable=False, default=False, server_default=false())

    user = relationship("User", back_populates="messages")
    chat = relationship("Chat", back_populates="messages")
