"""Chat lookups, lazy creation, and the chat -> messages soft-delete cascade."""

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.orm import Session as DBSession

from parley.models.chat import Chat
from parley.models.message import Message
from parley.models.mixins import utcnow
from parley.services.errors import NotFoundError
from parley.services.soft_delete_service import SoftDeleteService


class ChatService(SoftDeleteService[Chat]):
    def __init__(self, db: DBSession) -> None:
        super().__init__(db, Chat)

    def ensure_chat(self, external_id: int) -> Chat:
        """Insert the chat if absent. A soft-deleted chat stays deleted."""
        self.insert_if_absent({"external_id": external_id, "created_at": utcnow()})
        return self.get_record(external_id)

    def soft_delete(self, external_id: int) -> int:
        """
        Soft-delete the chat and every active message in it with one timestamp.

        Both updates run in the caller's transaction. Returns the number of
        messages cascaded; 0 when the chat was already deleted.
        """
        try:
            deleted_at = self.soft_delete_record(external_id, utcnow())
        except LookupError as e:
            raise NotFoundError(str(e)) from e
        if deleted_at is None:
            return 0
        result = self.db.execute(
            update(Message)
            .where(
                Message.chat_external_id == external_id,
                Message.active_filter(),
            )
            .values(deleted_at=deleted_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
