"""User model, keyed by the platform user id."""

from __future__ import annotations

from sqlalchemy import BigInteger, CheckConstraint, Column, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from parley.db import Base
from parley.models.mixins import BigIntId, CreatedAtMixin, SoftDeleteMixin


class User(Base, CreatedAtMixin, SoftDeleteMixin):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "deleted_at IS NULL OR deleted_at >= created_at",
            name="chk_users_deleted_after_created",
        ),
        Index(
            "idx_users_language_id",
            "language_id",
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    external_id = Column(BigInteger, primary_key=True, autoincrement=False)
    language_id = Column(BigIntId, ForeignKey("languages.id"), nullable=False)

    language = relationship("Language")
    messages = relationship("Message", back_populates="user")
