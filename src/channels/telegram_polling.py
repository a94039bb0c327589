from logger import logger
from events import bus, E
from channels.base import ChatGateway
from datamodel import ChannelType, IncomingMessage
from core.identity import generate_reminder_id
from utils import utc_to_user_local_str, format_utc
import datetime
import asyncio

from config.settings import *
import storage.reminder as reminder_storage
import storage.user as user_storage
from world.reminder import require_reminder_scheduler
import telegram
from telegram.ext import ApplicationBuilder, CommandHandler, MessageHandler, ContextTypes, filters

from functools import wraps

__all__ = ["TelegramGateway", "gateway", "main", "get_status"]


def requires_auth(func):
    @wraps(func)
    async def decorated(update: telegram.Update, *args, **kwargs):
        if ALLOWED_TELEGRAM_USER_IDS and update.effective_user.id not in ALLOWED_TELEGRAM_USER_IDS:
            logger.warning(f"用户 {update.effective_user.id} 未经允许访问 Bot")
            await update.message.reply_text("You are not allowed to use this bot.")
        else:
            return await func(update, *args, **kwargs)
    return decorated


class TelegramGateway(ChatGateway):
    RETRY_DELAY_SECONDS = 5.0

    def __init__(self) -> None:
        self.bot: telegram.Bot | None = None
        self.ready = asyncio.Event()  # Bot 可以发送消息后置位
        self._typing_tasks: dict[int, asyncio.Task] = {}

    async def _send_typing_loop(self, chat_id: int) -> None:
        """发送正在输入的动作"""
        try:
            logger.trace(f"开始发送 'typing' 动作给 Telegram chat_id: {chat_id}")
            for _ in range(0, 15):
                await self.bot.send_chat_action(chat_id=chat_id, action='typing')
                await asyncio.sleep(3.5)
            logger.trace(f"停止发送 typing 动作给 Telegram chat_id: {chat_id}")
        except asyncio.CancelledError:
            logger.trace(f"中止发送 typing 动作给 Telegram chat_id: {chat_id}")
        except telegram.error.TelegramError as e:
            logger.debug(f"发送 typing 动作失败: chat_id={chat_id}, error={e}")

    def start_typing(self, chat_id: int) -> None:
        if self.bot is None or chat_id in self._typing_tasks:
            return
        task = asyncio.create_task(self._send_typing_loop(chat_id))
        self._typing_tasks[chat_id] = task

        def _forget(done: asyncio.Task) -> None:
            if self._typing_tasks.get(chat_id) is done:
                del self._typing_tasks[chat_id]

        task.add_done_callback(_forget)

    def stop_typing(self, chat_id: int) -> None:
        task = self._typing_tasks.pop(chat_id, None)
        if task is not None:
            task.cancel()

    async def send_message(self, chat_id: int, text: str) -> None:
        if self.bot is None:
            raise RuntimeError("Telegram Bot 尚未启动")

        self.stop_typing(chat_id)
        logger.info(f"发送消息给 Telegram chat_id {chat_id}: {text}")
        try:
            await self.bot.send_message(chat_id=chat_id, text=text)
        except Exception as e:
            logger.opt(exception=e).error(f"向 Telegram chat_id {chat_id} 发送消息失败: {e}, 即将重试")
            await asyncio.sleep(self.RETRY_DELAY_SECONDS)
            await self.bot.send_message(chat_id=chat_id, text=text)
        bus.emit(E.IO_MESSAGE_SENT, chat_id, text)

    def get_status(self) -> dict[str, object]:
        return {
            "connected": self.bot is not None,
            "active_typing": len(self._typing_tasks),
        }


gateway = TelegramGateway()


def get_status() -> dict[str, object]:
    return gateway.get_status()


def _display_name(user: telegram.User) -> str:
    return user.first_name or user.username or "Unknown"


@requires_auth
async def cmd_start(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.info(f"收到 /start 命令来自 Telegram ID: {update.effective_user.id}")
    await user_storage.create_user_if_not_exists(
        update.effective_user.id, _display_name(update.effective_user), DEFAULT_USER_TIMEZONE
    )
    await update.message.reply_text("Hi! I'm Nudge. Tell me what you'd like to be reminded of.")


@requires_auth
async def cmd_reminders(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id = update.effective_user.id
    reminders = await reminder_storage.list_reminders_by_user_id(user_id)
    if not reminders:
        await update.message.reply_text("You have no pending reminders.")
        return

    user = await user_storage.get_user_by_id(user_id)
    timezone = user.timezone if user is not None else None
    lines = []
    for r in reminders:
        if timezone:
            when = f"{utc_to_user_local_str(r.time_to_notify_utc, timezone)} ({timezone})"
        else:
            when = f"{format_utc(r.time_to_notify_utc)} (UTC)"
        lines.append(f"- {r.reminder_text}: {when}")
    await update.message.reply_text("Pending reminders:\n" + "\n".join(lines))


@requires_auth
async def cmd_cancel(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    reminder_text = " ".join(context.args or []).strip()
    if not reminder_text:
        await update.message.reply_text("Usage: /cancel <reminder text>")
        return

    scheduler = require_reminder_scheduler()
    cancelled = await scheduler.cancel_reminder_by_reminder_id(
        update.effective_user.id, generate_reminder_id(reminder_text)
    )
    if cancelled:
        await update.message.reply_text(f"Cancelled reminder: {reminder_text}")
    else:
        await update.message.reply_text(f"No reminder found: {reminder_text}")


@requires_auth
async def process_message(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.message is None or not update.message.text:
        return

    user = update.effective_user
    chat_id = update.effective_chat.id
    logger.info(f"Telegram User ID: {user.id} 消息内容: {update.message.text}")

    gateway.start_typing(chat_id)
    incoming_msg = IncomingMessage(
        channel_type=ChannelType.TELEGRAM_BOT_POLLING,
        user_id=user.id,
        chat_id=chat_id,
        display_name=_display_name(user),
        content=update.message.text,
        timestamp=update.message.date,
        channel_context=context,
    )
    bus.emit(E.IO_MESSAGE_RECEIVED, incoming_msg)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """处理 telegram 库中发生的错误"""
    logger.opt(exception=context.error).error(f"Telegram 错误: {context.error}")
    if ADMIN_TELEGRAM_USER_ID != 0:
        try:
            await context.bot.send_message(chat_id=ADMIN_TELEGRAM_USER_ID, text=f"Warning! Nudge 发生错误: {context.error}")
        except Exception as e:
            logger.opt(exception=e).error(f"向管理员发送错误消息失败: {e}")

def bot_error_callback(error: telegram.error.TelegramError) -> None:
    if isinstance(error, telegram.error.NetworkError):
        logger.warning(f"Telegram Bot 网络错误: {error}")
    else:
        logger.opt(exception=error).error(f"Telegram Bot 发生预期外的错误: {error}")


async def main(shutdown_event: asyncio.Event) -> None:
    app = ApplicationBuilder().token(TELEGRAM_BOT_TOKEN).build()

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("reminders", cmd_reminders))
    app.add_handler(CommandHandler("cancel", cmd_cancel))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, process_message))
    app.add_error_handler(error_handler)

    try:
        await app.initialize()
        gateway.bot = app.bot
        await app.updater.start_polling(
            poll_interval=0.5,
            timeout=datetime.timedelta(seconds=15),
            bootstrap_retries=-1,
            drop_pending_updates=False,  # 保留下线期间的消息
            error_callback=bot_error_callback,
        )
        await app.start()
        gateway.ready.set()
        logger.info("Telegram Bot Polling 已启动")

        await shutdown_event.wait()
    finally:
        logger.info("关闭 Telegram Bot Polling...")
        gateway.ready.clear()
        await app.updater.stop()
        await app.stop()
        await app.shutdown()
        gateway.bot = None
