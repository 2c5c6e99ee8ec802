"""Tests for TelegramAdapter."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram.error import BadRequest, NetworkError

from parley.adapters.telegram import TelegramAdapter
from parley.schemas.messaging import (
    Channel,
    InboundKind,
    OutboundMessage,
    OutboundSendResult,
)
from tests.fixtures.telegram_fixtures import (
    FAKE_TOKEN,
    my_chat_member_update,
    telegram_message_update,
)


def _mock_bot(message_id=42):
    sent = MagicMock()
    sent.message_id = message_id
    bot = MagicMock()
    bot.send_message = AsyncMock(return_value=sent)
    bot.send_chat_action = AsyncMock()
    return bot


def test_verify_webhook_no_secret(telegram_adapter):
    assert telegram_adapter.verify_webhook(None, {}) is True
    assert (
        telegram_adapter.verify_webhook(None, {"X-Telegram-Bot-Api-Secret-Token": "x"})
        is True
    )


def test_verify_webhook_with_secret():
    adapter = TelegramAdapter(bot_token=FAKE_TOKEN, webhook_secret="secret")
    assert adapter.verify_webhook("secret", {"X-Telegram-Bot-Api-Secret-Token": "secret"})
    assert not adapter.verify_webhook("secret", {"X-Telegram-Bot-Api-Secret-Token": "wrong"})
    assert not adapter.verify_webhook("secret", {})


def test_verify_webhook_case_insensitive_header():
    """Starlette lowercases header names."""
    adapter = TelegramAdapter(bot_token=FAKE_TOKEN, webhook_secret="my-secret")
    assert adapter.verify_webhook("my-secret", {"x-telegram-bot-api-secret-token": "my-secret"})
    assert adapter.verify_webhook("my-secret", {"X-TELEGRAM-BOT-API-SECRET-TOKEN": "my-secret"})


def test_parse_private_message(telegram_adapter):
    inbound = telegram_adapter.parse_webhook(telegram_message_update("/ask hi"))

    assert inbound.channel == Channel.TELEGRAM
    assert inbound.kind == InboundKind.MESSAGE
    assert inbound.user_external_id == 789
    assert inbound.chat_id == 789
    assert inbound.chat_external_id == 789
    assert inbound.thread_id is None
    assert inbound.message_id == "456"
    assert inbound.text == "/ask hi"
    assert inbound.language == "en"
    assert inbound.is_group is False


def test_parse_forum_topic_message(telegram_adapter):
    payload = telegram_message_update(
        "hi",
        chat={"id": -100200, "type": "supergroup", "title": "Forum", "is_forum": True},
        message_thread_id=77,
        is_topic_message=True,
    )
    payload["message"]["from"]["language_code"] = "de"

    inbound = telegram_adapter.parse_webhook(payload)

    assert inbound.is_group is True
    assert inbound.chat_id == -100200
    assert inbound.thread_id == 77
    assert inbound.chat_external_id == 77
    assert inbound.language == "de"


def test_parse_photo_keeps_the_largest_size(telegram_adapter):
    payload = telegram_message_update(
        caption="/ask what is this?",
        photo=[
            {"file_id": "small", "file_unique_id": "s", "width": 90, "height": 60},
            {"file_id": "big", "file_unique_id": "b", "width": 1280, "height": 853},
            {"file_id": "medium", "file_unique_id": "m", "width": 320, "height": 213},
        ],
    )
    del payload["message"]["text"]

    inbound = telegram_adapter.parse_webhook(payload)

    assert inbound.text == "/ask what is this?"
    assert inbound.photo_file_id == "big"


def test_parse_text_message_has_no_photo(telegram_adapter):
    assert telegram_adapter.parse_webhook(telegram_message_update("hi")).photo_file_id is None


def test_parse_message_without_language_defaults_to_english(telegram_adapter):
    payload = telegram_message_update("hi")
    del payload["message"]["from"]["language_code"]
    assert telegram_adapter.parse_webhook(payload).language == "en"


def test_parse_bot_removed(telegram_adapter):
    inbound = telegram_adapter.parse_webhook(my_chat_member_update(-100123, "left"))

    assert inbound.kind == InboundKind.CHAT_REMOVED
    assert inbound.chat_external_id == -100123
    assert inbound.is_group is True


def test_parse_bot_added_is_ignored(telegram_adapter):
    inbound = telegram_adapter.parse_webhook(my_chat_member_update(-100123, "member"))
    assert inbound.kind == InboundKind.IGNORED


def test_parse_webhook_no_message_raises(telegram_adapter):
    with pytest.raises(ValueError, match="no message"):
        telegram_adapter.parse_webhook({"update_id": 123})


@pytest.mark.asyncio
async def test_send_returns_result(telegram_adapter):
    bot = _mock_bot()
    outbound = OutboundMessage(chat_id=123, text="<b>hi</b>")

    with patch.object(telegram_adapter, "_get_bot", return_value=bot):
        result = await telegram_adapter.send(outbound)

    assert isinstance(result, OutboundSendResult)
    assert result.success is True
    assert result.platform_message_id == "42"
    kwargs = bot.send_message.await_args.kwargs
    assert kwargs["parse_mode"] == "HTML"
    assert kwargs["text"] == "<b>hi</b>"
    assert "reply_parameters" not in kwargs


@pytest.mark.asyncio
async def test_send_group_reply_quotes_the_message(telegram_adapter):
    bot = _mock_bot()
    outbound = OutboundMessage(
        chat_id=-100, thread_id=5, text="hi", reply_to_message_id="456"
    )

    with patch.object(telegram_adapter, "_get_bot", return_value=bot):
        await telegram_adapter.send(outbound)

    kwargs = bot.send_message.await_args.kwargs
    assert kwargs["message_thread_id"] == 5
    assert kwargs["reply_parameters"].message_id == 456
    assert kwargs["reply_parameters"].allow_sending_without_reply is True


@pytest.mark.asyncio
async def test_send_rejected_markup_is_resent_as_plain_text(telegram_adapter):
    bot = _mock_bot()
    sent = bot.send_message.return_value
    bot.send_message = AsyncMock(side_effect=[BadRequest("Can't parse entities"), sent])
    outbound = OutboundMessage(chat_id=1, text="<b>bold</b> &amp; more")

    with patch.object(telegram_adapter, "_get_bot", return_value=bot):
        result = await telegram_adapter.send(outbound)

    assert result.success is True
    retry_kwargs = bot.send_message.await_args_list[1].kwargs
    assert "parse_mode" not in retry_kwargs
    assert retry_kwargs["text"] == "bold & more"


@pytest.mark.asyncio
async def test_send_failure_is_reported(telegram_adapter):
    bot = _mock_bot()
    bot.send_message = AsyncMock(side_effect=NetworkError("down"))

    with patch.object(telegram_adapter, "_get_bot", return_value=bot):
        result = await telegram_adapter.send(OutboundMessage(chat_id=1, text="hi"))

    assert result.success is False
    assert result.platform_message_id is None


@pytest.mark.asyncio
async def test_download_file_returns_bytes(telegram_adapter):
    tg_file = MagicMock()
    tg_file.download_as_bytearray = AsyncMock(return_value=bytearray(b"\xff\xd8\xffimage"))
    bot = _mock_bot()
    bot.get_file = AsyncMock(return_value=tg_file)

    with patch.object(telegram_adapter, "_get_bot", return_value=bot):
        data = await telegram_adapter.download_file("big")

    assert data == b"\xff\xd8\xffimage"
    bot.get_file.assert_awaited_once_with("big")


@pytest.mark.asyncio
async def test_download_file_failure_returns_none(telegram_adapter):
    bot = _mock_bot()
    bot.get_file = AsyncMock(side_effect=BadRequest("Wrong file_id"))

    with patch.object(telegram_adapter, "_get_bot", return_value=bot):
        assert await telegram_adapter.download_file("gone") is None


@pytest.mark.asyncio
async def test_typing_repeats_until_the_block_exits(telegram_adapter):
    bot = _mock_bot()

    with patch.object(telegram_adapter, "_get_bot", return_value=bot):
        async with telegram_adapter.typing(1, interval=0.01):
            await asyncio.sleep(0.05)
        calls = bot.send_chat_action.await_count
        await asyncio.sleep(0.03)

    assert calls >= 2
    assert bot.send_chat_action.await_count <= calls + 1
