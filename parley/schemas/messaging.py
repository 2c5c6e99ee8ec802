"""
Normalized message contracts between the Telegram adapter and the core.

Inbound updates are converted into these shapes; replies use the outbound
schema. Independent of python-telegram-bot types.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

DEFAULT_LANGUAGE = "en"


class Channel(str, Enum):
    """Supported chat channels."""

    TELEGRAM = "telegram"


class InboundKind(str, Enum):
    MESSAGE = "message"
    CHAT_REMOVED = "chat_removed"
    IGNORED = "ignored"


class InboundMessage(BaseModel):
    """Normalized inbound update (adapter -> core)."""

    channel: Channel = Channel.TELEGRAM
    kind: InboundKind = InboundKind.MESSAGE
    user_external_id: Optional[int] = None
    chat_id: int
    thread_id: Optional[int] = None
    message_id: Optional[str] = None
    text: str = ""
    language: str = DEFAULT_LANGUAGE
    is_group: bool = False
    timestamp: Optional[datetime] = None
    # Largest size of an attached photo.
    photo_file_id: Optional[str] = None

    @property
    def chat_external_id(self) -> int:
        """Forum threads keep their own history; otherwise the chat id."""
        return self.thread_id if self.thread_id is not None else self.chat_id


class OutboundMessage(BaseModel):
    """Normalized outbound message (core -> adapter)."""

    channel: Channel = Channel.TELEGRAM
    chat_id: int
    text: str
    thread_id: Optional[int] = None
    reply_to_message_id: Optional[str] = None
    parse_mode: Optional[str] = "HTML"


class OutboundSendResult(BaseModel):
    """Result of sending an outbound message (success + optional message_id)."""

    success: bool
    platform_message_id: Optional[str] = None
