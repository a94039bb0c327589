from logger import setup_logging, logger
from config.settings import *
setup_logging(
    log_level="TRACE",
    log_file=LOG_FILE,
    console_level="INFO",
)

import asyncio
import signal

import metrics  # noqa: F401  注册指标事件监听
from channels.telegram_polling import gateway as telegram_gateway, main as telegram_main
from admin.http_server import main_loop as admin_http_main
from core.coordinator import Coordinator
from core.orchestrator import SessionManager, configure_session_manager
from llm.base import LLMClient
from llm.middleware import LLMMiddleware
from world.reminder import ReminderScheduler, configure_reminder_scheduler
import storage.db_config as db_config

shutdown_event = asyncio.Event()

def signal_handler(sig, frame):
    """处理 SIGINT (Ctrl+C) / SIGTERM 信号"""
    logger.info("收到中断信号,正在依次关闭组件...")
    shutdown_event.set()

def _create_llm_clients() -> tuple[LLMClient, LLMClient]:
    """根据配置创建 (主模型, 快速模型) 客户端"""
    if LLM_PROVIDER == "openai":
        from llm.openai_client import OpenAIClient

        return OpenAIClient(model=LLM_MAIN_MODEL), OpenAIClient(model=LLM_FAST_MODEL)

    if LLM_PROVIDER == "gemini":
        from llm.gemini_client import GeminiClient

        return GeminiClient(model=LLM_MAIN_MODEL), GeminiClient(model=LLM_FAST_MODEL)

    raise ValueError(f"不支持的 LLM_PROVIDER: {LLM_PROVIDER}")


async def _run_reminder_scheduler(scheduler: ReminderScheduler) -> None:
    """Telegram 就绪后再恢复计时器，避免过期提醒在 Bot 启动前补发失败"""
    if ENABLE_TELEGRAM_BOT_POLLING:
        while not telegram_gateway.ready.is_set():
            if shutdown_event.is_set():
                return
            await asyncio.sleep(0.5)
    await scheduler.main_loop(shutdown_event)


async def main():
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    await db_config.init_db(DB_PATH)

    smart_llm_client, fast_llm_client = _create_llm_clients()
    scheduler = ReminderScheduler(
        send_message=telegram_gateway.send_message,
        missed_policy=REMINDER_MISSED_POLICY,
    )
    configure_reminder_scheduler(scheduler)

    coordinator = Coordinator(
        llm_client=smart_llm_client,
        gateway=telegram_gateway,
        scheduler=scheduler,
        middleware=LLMMiddleware(fast_llm_client),
        default_timezone=DEFAULT_USER_TIMEZONE,
    )
    session_manager = SessionManager(coordinator)
    configure_session_manager(session_manager)

    try:
        tasks = [_run_reminder_scheduler(scheduler)]

        if ENABLE_TELEGRAM_BOT_POLLING:
            tasks.append(telegram_main(shutdown_event))
        else:
            logger.warning("Telegram Bot Polling 已禁用, 提醒将无法送达")

        if ADMIN_HTTP_ENABLED:
            tasks.append(admin_http_main(shutdown_event))

        await asyncio.gather(*tasks)
    finally:
        logger.info("关闭 Nudge...")
        await session_manager.shutdown()

        logger.info("关闭数据库连接...")
        await db_config.close_db()
        logger.info("Nudge 已关闭")


if __name__ == "__main__":
    logger.info("启动 Nudge...")
    asyncio.run(main())
