"""
Command to handle Telegram webhook updates.

Validates the webhook secret, parses the update and dispatches bot commands:
/ask and /search start an exchange in the background, /reset clears the
user's history in the chat, /start and /help answer directly. Removing the
bot from a chat soft-deletes that chat and its messages.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Optional

from fastapi import HTTPException, Request

from parley.adapters.document_fetcher import build_document_fetcher_from_env, is_valid_url
from parley.commands.base_telegram import BaseTelegramCommand
from parley.config import get_settings
from parley.core.executor import ExchangeExecutor, get_executor
from parley.core.routing import Router
from parley.pipeline.orchestrator import ExchangeOrchestrator, ExchangeRequest
from parley.schemas.messaging import InboundKind, InboundMessage
from parley.services.context_store import ContextStore
from parley.services.errors import NotFoundError
from parley.workers.llm import build_llm_runner_from_env

COMMAND_RE = re.compile(r"^/([A-Za-z_]+)(?:@\w+)?(?:\s+(.*))?$", re.S)
DEFAULT_SEARCH_QUESTION = "Summarize this page."

START_TEXT = (
    "Hi! I answer questions using our conversation so far.\n"
    "Use /ask followed by your question, or /search with a link to ask about a page."
)
HELP_TEXT = (
    "/ask &lt;question&gt; - ask anything\n"
    "/search &lt;url&gt; [question] - ask about a web page\n"
    "/reset - forget this chat's history\n"
    "/help - show this message"
)
UNIDENTIFIED_USER_TEXT = "The user could not be identified."
RESET_DONE_TEXT = "Chat reset successfully."
RESET_NOOP_TEXT = "The chat has already been reset."


def parse_command(text: str) -> tuple[Optional[str], str]:
    """'/ask@bot  hi' -> ('ask', 'hi'); plain text -> (None, text)."""
    match = COMMAND_RE.match(text.strip())
    if not match:
        return None, text.strip()
    return match.group(1).lower(), (match.group(2) or "").strip()


class TelegramWebhookCommand(BaseTelegramCommand):
    def __init__(
        self,
        store: ContextStore,
        router: Optional[Router] = None,
        executor: Optional[ExchangeExecutor] = None,
    ) -> None:
        self.store = store
        self.settings = get_settings()
        self._adapter = self.get_telegram_adapter()
        self._router = router
        self._executor = executor
        self.logger = logging.getLogger(__name__)

    def _get_router(self) -> Router:
        if self._router is None:
            self._router = Router(self._adapter, self._build_orchestrator)
        return self._router

    def _build_orchestrator(self) -> ExchangeOrchestrator:
        return ExchangeOrchestrator(
            self.store,
            build_llm_runner_from_env(),
            build_document_fetcher_from_env(),
        )

    def _get_executor(self) -> ExchangeExecutor:
        return self._executor or get_executor()

    async def execute(self, request: Request, body: dict[str, Any]) -> dict[str, str]:
        """
        Validate the secret, parse the update and dispatch it.

        Raises:
            HTTPException: 503 if Telegram is not configured, 403 on an invalid
                secret, 400 on an unparsable update.
        """
        if self._adapter is None:
            raise HTTPException(
                status_code=503,
                detail="Telegram integration is not configured or disabled",
            )
        headers = dict(request.headers) if request.headers else {}
        if not self._adapter.verify_webhook(self.settings.telegram_webhook_secret, headers):
            raise HTTPException(status_code=403, detail="Invalid webhook secret")
        try:
            inbound = self._adapter.parse_webhook(body)
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning("Telegram webhook parse error: %s", e)
            raise HTTPException(status_code=400, detail="Invalid Telegram update") from e

        if inbound.kind == InboundKind.CHAT_REMOVED:
            await self._remove_chat(inbound)
        elif inbound.kind == InboundKind.MESSAGE:
            await self._handle_message(inbound)
        return {"status": "ok"}

    async def _remove_chat(self, inbound: InboundMessage) -> None:
        try:
            cascaded = await asyncio.to_thread(
                self.store.soft_delete_chat, inbound.chat_external_id
            )
        except NotFoundError:
            self.logger.info("Bot removed from unknown chat %s", inbound.chat_id)
            return
        self.logger.info(
            "Bot removed from chat %s; %d messages expired", inbound.chat_id, cascaded
        )

    async def _handle_message(self, inbound: InboundMessage) -> None:
        router = self._get_router()
        command, args = parse_command(inbound.text)
        if command is None and (inbound.is_group or not args):
            return
        if inbound.user_external_id is None:
            await router.reply(inbound, UNIDENTIFIED_USER_TEXT, parse_mode=None)
            return

        if command == "start":
            await router.reply(inbound, START_TEXT, parse_mode=None)
        elif command == "reset":
            cleared = await asyncio.to_thread(
                self.store.clear_history,
                inbound.user_external_id,
                inbound.chat_external_id,
            )
            await router.reply(
                inbound, RESET_DONE_TEXT if cleared else RESET_NOOP_TEXT, parse_mode=None
            )
        elif command in (None, "ask"):
            self._submit(inbound, self._ask_request(inbound, args))
        elif command == "search":
            self._submit(inbound, self._search_request(inbound, args))
        else:
            await router.reply(inbound, HELP_TEXT)

    def _ask_request(self, inbound: InboundMessage, text: str) -> ExchangeRequest:
        return ExchangeRequest(
            user_external_id=inbound.user_external_id,
            chat_external_id=inbound.chat_external_id,
            text=text,
            language=inbound.language,
        )

    def _search_request(self, inbound: InboundMessage, args: str) -> ExchangeRequest:
        url, _, question = args.partition(" ")
        return ExchangeRequest(
            user_external_id=inbound.user_external_id,
            chat_external_id=inbound.chat_external_id,
            text=question.strip() or DEFAULT_SEARCH_QUESTION,
            language=inbound.language,
            document_url=url if is_valid_url(url) else None,
            expects_document=True,
        )

    def _submit(self, inbound: InboundMessage, request: ExchangeRequest) -> None:
        router = self._get_router()
        self._get_executor().submit(
            request.user_external_id,
            lambda: router.route_exchange(inbound, request),
        )
