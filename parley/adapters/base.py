"""
Platform adapter interface.

Adapters hide platform SDK types from the core: they turn raw webhook
payloads into InboundMessage and deliver OutboundMessage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, Optional

from parley.schemas.messaging import InboundMessage, OutboundMessage, OutboundSendResult


class BasePlatformAdapter(ABC):
    @abstractmethod
    def parse_webhook(self, raw_payload: dict[str, Any]) -> InboundMessage:
        """Parse raw webhook payload into normalized inbound message. Raise ValueError if invalid."""
        ...

    @abstractmethod
    async def send(self, outbound: OutboundMessage) -> OutboundSendResult:
        ...

    @abstractmethod
    def typing(self, chat_id: int, thread_id: Optional[int] = None) -> AsyncContextManager[None]:
        """Show a typing indicator for as long as the context is open."""
        ...

    async def download_file(self, file_id: str) -> Optional[bytes]:
        """Fetch an attached file. Platforms without file access return None."""
        return None

    def verify_webhook(
        self, secret: Optional[str], request_headers: Optional[dict[str, str]] = None
    ) -> bool:
        """Return True if the request is authentic or the platform needs no verification."""
        return True
