"""进程内事件总线

通道层只负责把消息丢进总线，提醒调度器在状态变化时广播事件，
指标等旁路逻辑通过订阅事件获得数据，不直接耦合调度器。
"""

from __future__ import annotations

from typing import Awaitable, Callable

from pyee.asyncio import AsyncIOEventEmitter

from logger import logger

AsyncHandler = Callable[..., Awaitable[None]]


class E:
    """事件名及其参数"""

    IO_MESSAGE_RECEIVED = "io.message_received"  # (IncomingMessage)
    IO_MESSAGE_SENT = "io.message_sent"  # (chat_id, text)

    REMINDER_CREATED = "reminder.created"  # (Reminder)
    REMINDER_CANCELLED = "reminder.cancelled"  # (user_id, reminder_id)
    REMINDER_TRIGGERED = "reminder.triggered"  # (Reminder)
    REMINDER_SENT = "reminder.sent"  # (Reminder)
    REMINDER_DELIVERY_FAILED = "reminder.delivery_failed"  # (Reminder)

    DIRECTIVE_MALFORMED = "directive.malformed"  # (user_id, reason)


class Bus(AsyncIOEventEmitter):
    def on(self, event: str, handler: AsyncHandler | None = None):
        """`bus.on(event, handler)` 或 `@bus.on(event)`"""
        if handler is not None:
            return self._register(event, handler)
        return lambda h: self._register(event, h)

    def _register(self, event: str, handler: AsyncHandler) -> AsyncHandler:
        logger.debug(f"注册事件处理器: {event} -> {getattr(handler, '__name__', handler)}")
        self.add_listener(event, handler)
        return handler


bus = Bus()

__all__ = ["bus", "E", "Bus"]
