"""时区确认对话

用户没有时区时，先询问所在地，再把下一条回复交给 LLM 推断 IANA 时区。
推断结果经 zoneinfo 校验后写入用户信息，否则继续追问。
"""

from typing import Awaitable, Callable

from config.prompts import LOCATION_QUESTION, LOCATION_RETRY, TIMEZONE_CONFIRMATION
from core.session import UserSession
from datamodel import IncomingMessage
from llm.middleware import LLMMiddleware
from logger import logger
import storage.user as user_storage

__all__ = ["TimezoneDialogue"]

Say = Callable[[UserSession, str], Awaitable[None]]


class TimezoneDialogue:
    def __init__(self, middleware: LLMMiddleware, say: Say) -> None:
        self.middleware = middleware
        self.say = say

    async def handle(self, session: UserSession, msg: IncomingMessage) -> str | None:
        """推进一步对话; 时区确定时返回时区名"""
        if not session.awaiting_location:
            session.awaiting_location = True
            logger.info(f"用户 {session.user_id} 尚未设置时区, 询问所在地")
            await self.say(session, LOCATION_QUESTION)
            return None

        try:
            guess = await self.middleware.location_to_timezone(msg.content)
        except ValueError as e:
            logger.warning(f"无法从回复中解析时区: user_id={session.user_id}, error={e}")
            guess = None

        if guess is None or not self.middleware.validate_timezone(guess.timezone):
            logger.warning(f"时区推断无效: user_id={session.user_id}, location={msg.content!r}, guess={guess}")
            await self.say(session, LOCATION_RETRY)
            return None

        await user_storage.set_user_timezone(session.user_id, guess.timezone)
        session.awaiting_location = False
        await self.say(
            session,
            TIMEZONE_CONFIRMATION.format(timezone=guess.timezone, explanation=guess.explanation).strip(),
        )
        return guess.timezone
