from dataclasses import dataclass
from typing import Any, Literal, Optional
from enum import Enum
from datetime import datetime

__all__ = [
    "Reminder",
    "ChannelType", "IncomingMessage",
    "ConversationTurn",
    "UserInfo",
]

# ----------------- Reminder 数据模型 ----------------
@dataclass
class Reminder:
    user_id: int
    chat_id: int
    reminder_id: str  # 由 reminder_text 推导, 见 core.identity
    reminder_text: str
    notification_text: str
    time_to_notify_utc: datetime  # 带时区信息的 UTC 时间
    created_at_utc: Optional[str] = None  # 由数据库写入

    @property
    def key(self) -> tuple[int, str]:
        return (self.user_id, self.reminder_id)


# ----------------- Channel 数据模型 ----------------
class ChannelType(str, Enum):
    TELEGRAM_BOT_POLLING = "telegram_bot_polling"

@dataclass
class IncomingMessage:
    channel_type: ChannelType
    user_id: int
    chat_id: int
    display_name: str
    content: str
    timestamp: Optional[datetime] = None
    channel_context: Any = None  # 平台上下文对象


# ----------------- 对话数据模型 ----------------
@dataclass
class ConversationTurn:
    role: Literal["user", "assistant"]
    content: str
    timestamp: Optional[str] = None  # UTC, 格式: "YYYY-MM-DD HH:MM:SS"


# ----------------- User 数据模型 ----------------
@dataclass
class UserInfo:
    user_id: int
    user_name: Optional[str] = None
    timezone: Optional[str] = None  # IANA时区字符串，例如 "Asia/Shanghai"
