"""Get-or-create of the (user, chat) pair that owns an exchange."""

from __future__ import annotations

from sqlalchemy.orm import Session as DBSession

from parley.models.chat import Chat
from parley.models.user import User
from parley.services.chat_service import ChatService
from parley.services.errors import ConstraintViolationError
from parley.services.language_service import LanguageService
from parley.services.user_service import UserService


class ParticipantService:
    def __init__(self, db: DBSession) -> None:
        self.db = db
        self._users = UserService(db)
        self._chats = ChatService(db)
        self._languages = LanguageService(db)

    def ensure_participants(
        self,
        user_external_id: int,
        chat_external_id: int,
        language_id: int,
    ) -> tuple[User, Chat]:
        """Idempotent: creates whichever of the two rows is missing, touches nothing else."""
        if self._languages.get_active(language_id) is None:
            raise ConstraintViolationError(f"Language {language_id} is not active")
        user = self._users.ensure_user(user_external_id, language_id)
        chat = self._chats.ensure_chat(chat_external_id)
        return user, chat
