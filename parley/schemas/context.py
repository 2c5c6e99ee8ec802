"""Pydantic schemas for the context store (messages and history rows)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class MessageCreate(BaseModel):
    """Schema for recording a new exchange. model_response is attached later."""

    user_external_id: int
    chat_external_id: int
    content: str = Field(min_length=1)
    created_at: Optional[datetime] = None


class HistoryTurn(BaseModel):
    """
    One prior exchange as returned by recent_history.

    When no history exists the store returns a single turn with both fields
    None; callers must treat it as "no history", never as content.
    """

    content: Optional[str] = None
    model_response: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def is_sentinel(self) -> bool:
        return self.content is None and self.model_response is None


NO_HISTORY = HistoryTurn()
