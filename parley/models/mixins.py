"""Column mixins shared by the context-store tables."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer
from sqlalchemy.orm import declared_attr

# BIGINT everywhere except SQLite, where only INTEGER PRIMARY KEY autoincrements.
BigIntId = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreatedAtMixin:
    @declared_attr
    def created_at(cls):
        return Column(DateTime(timezone=True), nullable=False, default=utcnow)


class SoftDeleteMixin:
    """Rows are never removed; deleted_at marks them inactive."""

    @declared_attr
    def deleted_at(cls):
        return Column(DateTime(timezone=True), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    @classmethod
    def active_filter(cls):
        """SQL expression selecting only active rows (the `active_*` views)."""
        return cls.deleted_at.is_(None)
