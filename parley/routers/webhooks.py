"""
Webhook routes for inbound chat platform updates.

Telegram POSTs raw updates here; the command validates, dispatches and
returns 200 while exchanges continue in the background.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from parley.commands.webhooks.telegram_command import TelegramWebhookCommand
from parley.routers.utils.dependencies import get_context_store
from parley.services.context_store import ContextStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/telegram")
async def telegram_webhook(
    request: Request,
    store: ContextStore = Depends(get_context_store),
) -> dict[str, str]:
    """Receive a Telegram update. Validates X-Telegram-Bot-Api-Secret-Token when configured."""
    try:
        body = await request.json()
    except ValueError as e:
        logger.warning("Telegram webhook invalid JSON: %s", e)
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")
    return await TelegramWebhookCommand(store).execute(request, body)
