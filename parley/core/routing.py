from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Optional

from parley.adapters.base import BasePlatformAdapter
from parley.pipeline.errors import DeliveryError
from parley.pipeline.orchestrator import (
    Deliver,
    ExchangeOrchestrator,
    ExchangeRequest,
    ExchangeResult,
)
from parley.schemas.messaging import InboundMessage, OutboundMessage

logger = logging.getLogger(__name__)


class Router:
    """Deterministic routing: replies go back to the same chat/thread."""

    def __init__(
        self,
        adapter: BasePlatformAdapter,
        orchestrator_factory: Callable[[], ExchangeOrchestrator],
    ) -> None:
        self._adapter = adapter
        self._orchestrator_factory = orchestrator_factory
        self._orchestrator: Optional[ExchangeOrchestrator] = None

    @property
    def orchestrator(self) -> ExchangeOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = self._orchestrator_factory()
        return self._orchestrator

    def outbound_for(self, msg: InboundMessage, text: str, parse_mode: Optional[str] = "HTML") -> OutboundMessage:
        """In groups the reply quotes the triggering message; private chats get a plain message."""
        return OutboundMessage(
            channel=msg.channel,
            chat_id=msg.chat_id,
            thread_id=msg.thread_id,
            text=text,
            reply_to_message_id=msg.message_id if msg.is_group else None,
            parse_mode=parse_mode,
        )

    async def reply(self, msg: InboundMessage, text: str, parse_mode: Optional[str] = "HTML") -> bool:
        result = await self._adapter.send(self.outbound_for(msg, text, parse_mode))
        if not result.success:
            logger.error("Reply to chat %s was not delivered", msg.chat_id)
        return result.success

    def deliver_for(self, msg: InboundMessage) -> Deliver:
        async def deliver(text: str) -> None:
            if not await self.reply(msg, text):
                raise DeliveryError(f"Reply to chat {msg.chat_id} was not delivered")

        return deliver

    async def route_exchange(self, msg: InboundMessage, request: ExchangeRequest) -> ExchangeResult:
        async with self._adapter.typing(msg.chat_id, msg.thread_id):
            if msg.photo_file_id and request.image is None:
                image = await self._adapter.download_file(msg.photo_file_id)
                if image:
                    request = replace(request, image=image)
                else:
                    logger.warning("Photo in chat %s could not be downloaded", msg.chat_id)
            result = await self.orchestrator.run(request, self.deliver_for(msg))
        logger.info(
            "Exchange for user %s in chat %s finished: %s",
            request.user_external_id,
            request.chat_external_id,
            " -> ".join(state.value for state in result.trace),
        )
        return result
