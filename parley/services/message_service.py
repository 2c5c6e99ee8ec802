"""Message append, response attachment, history reads and clearing."""

from __future__ import annotations

from typing import List

from sqlalchemy import update
from sqlalchemy.orm import Session as DBSession

from parley.models.message import Message
from parley.models.mixins import utcnow
from parley.schemas.context import MessageCreate
from parley.services.chat_service import ChatService
from parley.services.errors import ConstraintViolationError, NotFoundError
from parley.services.soft_delete_service import SoftDeleteService
from parley.services.user_service import UserService


class MessageService(SoftDeleteService[Message]):
    def __init__(self, db: DBSession) -> None:
        super().__init__(db, Message)

    def create_message(self, data: MessageCreate) -> Message:
        """Append a message. The user and chat rows must exist; soft-deleted ones still count."""
        if UserService(self.db).get_record(data.user_external_id) is None:
            raise ConstraintViolationError(
                f"User {data.user_external_id} does not exist"
            )
        if ChatService(self.db).get_record(data.chat_external_id) is None:
            raise ConstraintViolationError(
                f"Chat {data.chat_external_id} does not exist"
            )
        msg = Message(
            user_external_id=data.user_external_id,
            chat_external_id=data.chat_external_id,
            content=data.content,
            created_at=data.created_at or utcnow(),
            is_cleared=False,
        )
        self.db.add(msg)
        self.db.flush()
        return msg

    def attach_response(self, message_id: int, model_response: str) -> Message:
        msg = self.get_active(message_id)
        if msg is None:
            raise NotFoundError(f"Message {message_id} does not exist or is deleted")
        msg.model_response = model_response
        self.db.flush()
        return msg

    def get_recent_messages(
        self,
        user_external_id: int,
        chat_external_id: int,
        limit: int,
    ) -> List[Message]:
        """Active, non-cleared messages of the pair, newest first."""
        return (
            self.db.query(Message)
            .filter(
                Message.user_external_id == user_external_id,
                Message.chat_external_id == chat_external_id,
                Message.active_filter(),
                Message.is_cleared.is_(False),
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
            .all()
        )

    def clear_messages(self, user_external_id: int, chat_external_id: int) -> int:
        """Flag the pair's active messages as cleared. Returns how many were flagged."""
        result = self.db.execute(
            update(Message)
            .where(
                Message.user_external_id == user_external_id,
                Message.chat_external_id == chat_external_id,
                Message.active_filter(),
                Message.is_cleared.is_(False),
            )
            .values(is_cleared=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
