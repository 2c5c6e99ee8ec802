"""
Telegram platform adapter.

Uses python-telegram-bot for parsing webhook updates and calling the Bot API.
Replies are sent with parse_mode=HTML; if Telegram rejects the markup the
same text is resent as plain text.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timezone
from typing import Any, AsyncIterator, Optional

from telegram import Bot, ReplyParameters, Update
from telegram.constants import ChatAction, ChatMemberStatus, ChatType
from telegram.error import BadRequest, TelegramError

from parley.adapters.base import BasePlatformAdapter
from parley.markup import strip_markup
from parley.schemas.messaging import (
    DEFAULT_LANGUAGE,
    Channel,
    InboundKind,
    InboundMessage,
    OutboundMessage,
    OutboundSendResult,
)

logger = logging.getLogger(__name__)

TYPING_INTERVAL_SECONDS = 4.0
REMOVED_STATUSES = frozenset({ChatMemberStatus.LEFT, ChatMemberStatus.BANNED})


class TelegramAdapter(BasePlatformAdapter):
    """Telegram adapter: parse webhook updates, send messages via Bot API."""

    TELEGRAM_SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"

    def __init__(self, bot_token: str, webhook_secret: Optional[str] = None) -> None:
        self._bot_token = bot_token
        self._webhook_secret = webhook_secret
        self._bot: Optional[Bot] = None

    def _get_bot(self) -> Bot:
        if self._bot is None:
            self._bot = Bot(token=self._bot_token)
        return self._bot

    def verify_webhook(
        self, secret: Optional[str], request_headers: Optional[dict[str, str]] = None
    ) -> bool:
        """Validate X-Telegram-Bot-Api-Secret-Token if a webhook secret is configured."""
        expected = secret or self._webhook_secret
        if not expected:
            return True
        header_lower = self.TELEGRAM_SECRET_HEADER.lower()
        actual = None
        for key, value in (request_headers or {}).items():
            if key.lower() == header_lower:
                actual = value
                break
        return actual == expected

    def parse_webhook(self, raw_payload: dict[str, Any]) -> InboundMessage:
        """Parse a Telegram update into an InboundMessage (message or bot removal)."""
        update = Update.de_json(raw_payload, self._get_bot())
        if update is None:
            raise ValueError("Invalid Telegram update: de_json returned None")

        member = update.my_chat_member
        if member is not None:
            removed = member.new_chat_member.status in REMOVED_STATUSES
            return InboundMessage(
                channel=Channel.TELEGRAM,
                kind=InboundKind.CHAT_REMOVED if removed else InboundKind.IGNORED,
                user_external_id=member.from_user.id if member.from_user else None,
                chat_id=member.chat.id,
                is_group=member.chat.type != ChatType.PRIVATE,
                timestamp=member.date,
            )

        msg = update.effective_message
        if msg is None:
            raise ValueError("Telegram update has no message")
        from_user = msg.from_user
        photo = max(msg.photo, key=lambda p: p.width * p.height) if msg.photo else None
        ts = msg.date
        if ts is not None and ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return InboundMessage(
            channel=Channel.TELEGRAM,
            kind=InboundKind.MESSAGE,
            user_external_id=from_user.id if from_user else None,
            chat_id=msg.chat_id,
            thread_id=msg.message_thread_id if msg.is_topic_message else None,
            message_id=str(msg.message_id),
            text=msg.text or msg.caption or "",
            language=(from_user.language_code if from_user else None) or DEFAULT_LANGUAGE,
            is_group=msg.chat.type != ChatType.PRIVATE,
            timestamp=ts,
            photo_file_id=photo.file_id if photo else None,
        )

    async def send(self, outbound: OutboundMessage) -> OutboundSendResult:
        """Send a message; markup Telegram refuses is resent once as plain text."""
        if outbound.channel != Channel.TELEGRAM:
            return OutboundSendResult(success=False, platform_message_id=None)

        send_kw: dict[str, Any] = {"chat_id": outbound.chat_id, "text": outbound.text}
        if outbound.parse_mode:
            send_kw["parse_mode"] = outbound.parse_mode
        if outbound.thread_id is not None:
            send_kw["message_thread_id"] = outbound.thread_id
        if outbound.reply_to_message_id:
            send_kw["reply_parameters"] = ReplyParameters(
                message_id=int(outbound.reply_to_message_id),
                allow_sending_without_reply=True,
            )

        bot = self._get_bot()
        try:
            try:
                sent = await bot.send_message(**send_kw)
            except BadRequest as exc:
                if not outbound.parse_mode:
                    raise
                logger.warning("Telegram rejected formatted text (%s); resending as plain text", exc)
                send_kw.pop("parse_mode")
                send_kw["text"] = strip_markup(outbound.text)
                sent = await bot.send_message(**send_kw)
        except TelegramError:
            logger.exception("Telegram send failed for chat %s", outbound.chat_id)
            return OutboundSendResult(success=False, platform_message_id=None)

        return OutboundSendResult(
            success=True,
            platform_message_id=str(sent.message_id) if sent and sent.message_id else None,
        )

    async def download_file(self, file_id: str) -> Optional[bytes]:
        """Download a file sent to the bot; None when Telegram refuses."""
        try:
            tg_file = await self._get_bot().get_file(file_id)
            data = await tg_file.download_as_bytearray()
        except TelegramError:
            logger.exception("Telegram file download failed for %s", file_id)
            return None
        return bytes(data)

    @asynccontextmanager
    async def typing(
        self,
        chat_id: int,
        thread_id: Optional[int] = None,
        interval: float = TYPING_INTERVAL_SECONDS,
    ) -> AsyncIterator[None]:
        """Re-send the typing chat action every few seconds until the block exits."""
        bot = self._get_bot()

        async def keep_alive() -> None:
            while True:
                try:
                    await bot.send_chat_action(
                        chat_id=chat_id,
                        action=ChatAction.TYPING,
                        message_thread_id=thread_id,
                    )
                except TelegramError as exc:
                    logger.debug("Typing indicator failed for chat %s: %s", chat_id, exc)
                await asyncio.sleep(interval)

        task = asyncio.create_task(keep_alive())
        try:
            yield
        finally:
            task.cancel()
