from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pydantic import BaseModel, Field


@dataclass
class RuntimeControl:
    shutdown_event: asyncio.Event
    started_at: float


class ShutdownRequest(BaseModel):
    reason: str = Field(default="manual")


class ReminderOut(BaseModel):
    user_id: int
    chat_id: int
    reminder_id: str
    reminder_text: str
    notification_text: str
    time_to_notify_utc: str
    created_at_utc: str | None = None
    armed: bool = False
