"""Chat model, keyed by the platform chat id (or forum thread id)."""

from __future__ import annotations

from sqlalchemy import BigInteger, CheckConstraint, Column
from sqlalchemy.orm import relationship

from parley.db import Base
from parley.models.mixins import CreatedAtMixin, SoftDeleteMixin


class Chat(Base, CreatedAtMixin, SoftDeleteMixin):
    __tablename__ = "chats"

    __table_args__ = (
        CheckConstraint(
            "deleted_at IS NULL OR deleted_at >= created_at",
            name="chk_chats_deleted_after_created",
        ),
    )

    external_id = Column(BigInteger, primary_key=True, autoincrement=False)

    # No ORM cascade: soft deletion of messages is done by ChatService.
    messages = relationship("Message", back_populates="chat")
