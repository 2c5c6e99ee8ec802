"""
ContextStore: facade over languages, users, chats and messages.

Every public method is one transaction (DatabaseManager.db_session), so a
composed operation such as recent_history never exposes a half-created
user/chat pair, and a chat is never deleted without its messages.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from parley.db import DatabaseManager, db_manager as default_db_manager
from parley.schemas.context import HistoryTurn, MessageCreate, NO_HISTORY
from parley.schemas.messaging import DEFAULT_LANGUAGE
from parley.services.chat_service import ChatService
from parley.services.language_service import LanguageService
from parley.services.message_service import MessageService
from parley.services.participant_service import ParticipantService

logger = logging.getLogger(__name__)


class ContextStore:
    def __init__(self, manager: Optional[DatabaseManager] = None) -> None:
        self._manager = manager or default_db_manager

    def ensure_language(self, name: str) -> int:
        with self._manager.db_session() as db:
            return LanguageService(db).ensure_language(name)

    def ensure_participants(
        self,
        user_external_id: int,
        chat_external_id: int,
        language_id: int,
    ) -> None:
        with self._manager.db_session() as db:
            ParticipantService(db).ensure_participants(
                user_external_id, chat_external_id, language_id
            )

    def recent_history(
        self,
        user_external_id: int,
        chat_external_id: int,
        limit: int,
        language_name: str = DEFAULT_LANGUAGE,
    ) -> List[HistoryTurn]:
        """
        Upsert language, user and chat, then read the pair's history, atomically.

        Returns up to `limit` turns newest first, or [NO_HISTORY] when the
        pair has no active, non-cleared messages.
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        with self._manager.db_session() as db:
            language_id = LanguageService(db).ensure_language(language_name)
            ParticipantService(db).ensure_participants(
                user_external_id, chat_external_id, language_id
            )
            rows = MessageService(db).get_recent_messages(
                user_external_id, chat_external_id, limit
            )
            turns = [
                HistoryTurn(content=m.content, model_response=m.model_response)
                for m in rows
            ]
        return turns or [NO_HISTORY]

    def record_exchange(self, data: MessageCreate) -> int:
        """Append a message with no response yet; returns its id."""
        with self._manager.db_session() as db:
            return MessageService(db).create_message(data).id

    def attach_response(self, message_id: int, model_response: str) -> None:
        with self._manager.db_session() as db:
            MessageService(db).attach_response(message_id, model_response)

    def soft_delete_chat(self, chat_external_id: int) -> int:
        with self._manager.db_session() as db:
            cascaded = ChatService(db).soft_delete(chat_external_id)
        logger.info(
            "Soft-deleted chat %s (%d messages cascaded)", chat_external_id, cascaded
        )
        return cascaded

    def clear_history(self, user_external_id: int, chat_external_id: int) -> int:
        """Exclude the pair's current messages from future context (the /reset command)."""
        with self._manager.db_session() as db:
            return MessageService(db).clear_messages(
                user_external_id, chat_external_id
            )
