"""消息处理流水线

每条用户消息依次经过：
1. 确认用户身份并在首次接触时从数据库加载对话历史；
2. 给消息加上当前时间前缀，写入缓存与数据库；
3. 用户没有时区时转入时区确认对话，不调用模型；
4. 以 [system prompt, 用户名, 全部历史] 调用模型；
5. 回复落库后解析内部指令并交给提醒调度器，只把消息内容部分发给用户。
"""

import time
from datetime import datetime
from typing import Callable, List

from channels.base import ChatGateway
from config.prompts import CORE_SYSTEM_PROMPT
from core.directive import (
    CancelReminder, Directive, MalformedDirective, NewReminder, NoDirective, parse_reply,
)
from core.identity import generate_reminder_id
from core.session import UserSession
from core.timezone_dialogue import TimezoneDialogue
from datamodel import IncomingMessage, Reminder
from events import bus, E
from llm.base import LLMClient, LLMMessage
from llm.middleware import LLMMiddleware
from logger import logger
from metrics import runtime_metrics
from utils import SECOND_FORMAT, format_utc, now_utc, user_local_to_utc, utc_to_user_local_str
from world.reminder import ReminderScheduler
import storage.message as message_storage
import storage.user as user_storage

__all__ = ["Coordinator"]


class Coordinator:
    def __init__(
        self,
        llm_client: LLMClient,
        gateway: ChatGateway,
        scheduler: ReminderScheduler,
        middleware: LLMMiddleware | None = None,
        default_timezone: str | None = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.llm_client = llm_client
        self.gateway = gateway
        self.scheduler = scheduler
        self.default_timezone = default_timezone
        self.clock = clock
        self.timezone_dialogue = TimezoneDialogue(middleware or LLMMiddleware(llm_client), self._say)

    async def handle_message(self, session: UserSession, msg: IncomingMessage) -> None:
        try:
            await self._handle(session, msg)
        finally:
            # 空回复或处理异常时也要结束 "正在输入"
            self.gateway.stop_typing(msg.chat_id)

    async def _handle(self, session: UserSession, msg: IncomingMessage) -> None:
        session.chat_id = msg.chat_id
        session.display_name = msg.display_name
        runtime_metrics.record_msg_in()

        await user_storage.create_user_if_not_exists(msg.user_id, msg.display_name, self.default_timezone)
        user_info = await user_storage.get_user_by_id(msg.user_id)
        timezone = user_info.timezone if user_info is not None else None

        await self._hydrate(session)
        now_local = utc_to_user_local_str(self.clock(), timezone) if timezone else format_utc(self.clock())
        stamped = f"The datetime is {now_local} ({timezone or 'UTC'}). {msg.content}"
        await self._remember(session, "user", stamped)

        if timezone is None:
            # 时区确定之前不调用模型, 因此也不会产生需要解释时间的指令
            await self.timezone_dialogue.handle(session, msg)
            return

        reply = await self._complete(session)
        if not reply.strip():
            logger.warning(f"LLM 返回空回复, 不向用户 {session.user_id} 发送消息")
            return

        await self._remember(session, "assistant", reply)
        parsed = parse_reply(reply)
        await self._apply_directive(session, parsed.directive, timezone)

        if parsed.message:
            await self.gateway.send_message(session.chat_id, parsed.message)
        else:
            logger.warning(f"回复中没有可发送的消息内容: user_id={session.user_id}, raw_len={len(reply)}")

    async def _hydrate(self, session: UserSession) -> None:
        if session.hydrated:
            return
        session.history = await message_storage.get_messages_by_user_id(session.user_id) + session.history
        session.hydrated = True
        logger.info(f"已加载用户 {session.user_id} 的历史消息: count={len(session.history)}")

    async def _remember(self, session: UserSession, role: str, content: str) -> None:
        await message_storage.create_message(session.user_id, role, content)
        session.append(role, content)

    async def _say(self, session: UserSession, text: str) -> None:
        await self._remember(session, "assistant", text)
        await self.gateway.send_message(session.chat_id, text)

    def _build_turns(self, session: UserSession) -> List[LLMMessage]:
        turns: List[LLMMessage] = [
            {"role": "system", "content": CORE_SYSTEM_PROMPT},
            {"role": "user", "content": f"my name is {session.display_name}"},
        ]
        turns += [{"role": turn.role, "content": turn.content} for turn in session.history]
        return turns

    async def _complete(self, session: UserSession) -> str:
        start_time = time.perf_counter()
        llm_call_error = False
        try:
            return await self.llm_client.complete(self._build_turns(session)) or ""
        except Exception:
            llm_call_error = True
            raise
        finally:
            latency_seconds = time.perf_counter() - start_time
            runtime_metrics.record_llm_call(latency_ms=latency_seconds * 1000, error=llm_call_error)
            logger.debug(f"LLM API 响应时间: {latency_seconds:.2f} 秒")

    async def _apply_directive(self, session: UserSession, directive: Directive, timezone: str) -> None:
        if isinstance(directive, NoDirective):
            return

        if isinstance(directive, MalformedDirective):
            logger.warning(f"丢弃格式错误的内部指令: user_id={session.user_id}, reason={directive.reason}, raw={directive.raw!r}")
            bus.emit(E.DIRECTIVE_MALFORMED, session.user_id, directive.reason)
            return

        if isinstance(directive, NewReminder):
            await self._create_reminder(session, directive, timezone)
        elif isinstance(directive, CancelReminder):
            await self._cancel_reminder(session, directive)

    async def _create_reminder(self, session: UserSession, directive: NewReminder, timezone: str) -> None:
        time_to_notify_utc = user_local_to_utc(directive.time_to_notify_local, timezone)
        if time_to_notify_utc <= self.clock():
            logger.warning(
                f"提醒时间已过, 丢弃: user_id={session.user_id}, text={directive.reminder_text}, "
                f"local={directive.time_to_notify_local.strftime(SECOND_FORMAT)} ({timezone})"
            )
            return

        reminder = Reminder(
            user_id=session.user_id,
            chat_id=session.chat_id,
            reminder_id=generate_reminder_id(directive.reminder_text),
            reminder_text=directive.reminder_text,
            notification_text=directive.notification_text,
            time_to_notify_utc=time_to_notify_utc,
        )
        try:
            await self.scheduler.add_reminder(reminder)
        except Exception as e:
            logger.opt(exception=e).error(
                f"提醒创建失败, 未挂载计时器: user_id={session.user_id}, text={reminder.reminder_text}, "
                f"time_to_notify_utc={format_utc(time_to_notify_utc)}",
            )

    async def _cancel_reminder(self, session: UserSession, directive: CancelReminder) -> None:
        reminder_id = generate_reminder_id(directive.reminder_text)
        try:
            await self.scheduler.cancel_reminder_by_reminder_id(session.user_id, reminder_id)
        except Exception as e:
            logger.opt(exception=e).error(f"提醒撤销失败: user_id={session.user_id}, text={directive.reminder_text}")
