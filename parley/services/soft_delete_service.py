"""Base service for tables with a deleted_at column."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession

from parley.models.mixins import utcnow

ModelType = TypeVar("ModelType")


class SoftDeleteService(Generic[ModelType]):
    """
    Shared reads and writes for soft-deletable models.

    Services flush but never commit; the caller's db_session() owns the
    transaction so that composed operations stay atomic.
    """

    def __init__(self, db: DBSession, model: Type[ModelType]) -> None:
        self.db = db
        self.model = model

    def _pk_column(self):
        return inspect(self.model).primary_key[0]

    def get_record(self, record_id: Any) -> Optional[ModelType]:
        """Fetch by primary key, including soft-deleted rows."""
        return self.db.get(self.model, record_id)

    def get_active(self, record_id: Any) -> Optional[ModelType]:
        return (
            self.db.query(self.model)
            .filter(self._pk_column() == record_id, self.model.active_filter())
            .first()
        )

    def soft_delete_record(
        self, record_id: Any, deleted_at: Optional[datetime] = None
    ) -> Optional[datetime]:
        """
        Mark an active row deleted. Returns the timestamp used, or None when
        the row was already deleted. Raises LookupError if it never existed.
        """
        record = self.get_record(record_id)
        if record is None:
            raise LookupError(f"{self.model.__name__} {record_id!r} not found")
        if record.deleted_at is not None:
            return None
        record.deleted_at = deleted_at or utcnow()
        self.db.flush()
        return record.deleted_at

    def insert_if_absent(self, values: dict[str, Any]) -> None:
        """
        Conditional insert: no-op when a unique key already holds the row.

        PostgreSQL and SQLite use INSERT ... ON CONFLICT DO NOTHING; other
        dialects insert inside a SAVEPOINT and treat IntegrityError as a
        concurrent writer having won. Callers read the row back afterwards.
        """
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            try:
                with self.db.begin_nested():
                    self.db.add(self.model(**values))
            except IntegrityError:
                pass
            return
        self.db.execute(insert(self.model).values(**values).on_conflict_do_nothing())
