"""Language model: one active row per language name."""

from __future__ import annotations

from sqlalchemy import Column, Index, String, text

from parley.db import Base
from parley.models.mixins import BigIntId, SoftDeleteMixin


class Language(Base, SoftDeleteMixin):
    __tablename__ = "languages"

    __table_args__ = (
        Index(
            "uq_languages_name_active",
            "name",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
