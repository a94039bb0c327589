import asyncio
from typing import Awaitable, Callable

from datamodel import ConversationTurn, IncomingMessage
from logger import logger
from utils import now_utc, format_utc

__all__ = ["UserSession", "MessageHandler"]


class UserSession:
    """单用户会话

    持有对话缓存与待处理消息队列；同一用户的消息由唯一的 worker 按到达顺序串行处理，
    因此缓存只会在 worker 内被修改。
    """

    def __init__(self, user_id: int, chat_id: int, display_name: str) -> None:
        self.user_id = user_id
        self.chat_id = chat_id
        self.display_name = display_name

        self.history: list[ConversationTurn] = []
        self.hydrated = False  # 是否已从数据库加载历史消息
        self.awaiting_location = False

        self.inbox: asyncio.Queue[IncomingMessage] = asyncio.Queue()

    def append(self, role: str, content: str) -> None:
        self.history.append(ConversationTurn(role=role, content=content, timestamp=format_utc(now_utc())))

    def enqueue(self, msg: IncomingMessage) -> None:
        self.inbox.put_nowait(msg)
        logger.trace(f"用户 {self.user_id} 消息入队: queue_size={self.inbox.qsize()}")

    async def run_loop(self, handler: "MessageHandler") -> None:
        logger.info(f"用户 {self.user_id} 的会话 worker 已启动")
        try:
            while True:
                msg = await self.inbox.get()
                try:
                    await handler(self, msg)
                except Exception as e:
                    logger.opt(exception=e).error(f"用户 {self.user_id} 的消息处理失败")
                finally:
                    self.inbox.task_done()
        except asyncio.CancelledError:
            logger.info(f"用户 {self.user_id} 的会话 worker 已停止")
            raise


MessageHandler = Callable[[UserSession, IncomingMessage], Awaitable[None]]
