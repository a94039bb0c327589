from __future__ import annotations

import os

# 配置在导入时读取, 必须在导入任何项目模块之前设置
os.environ["ENABLE_TELEGRAM_BOT_POLLING"] = "false"
os.environ["LLM_PROVIDER"] = "openai"
os.environ["OPENAI_PRIMARY_API_KEY"] = "test"
os.environ["ADMIN_AUTH_TOKEN"] = "test-token"
os.environ.pop("DEFAULT_USER_TIMEZONE", None)

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

import pytest

import storage.db_config as db_config


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeGateway:
    def __init__(self, fail_times: int = 0) -> None:
        self.sent: list[tuple[int, str]] = []
        self.typing_stopped: list[int] = []
        self.fail_times = fail_times

    async def send_message(self, chat_id: int, text: str) -> None:
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("send failed")
        self.sent.append((chat_id, text))

    def stop_typing(self, chat_id: int) -> None:
        self.typing_stopped.append(chat_id)


@pytest.fixture
def run_db(tmp_path):
    """在独立事件循环中用临时数据库执行协程函数"""

    def runner(fn: Callable[[], Awaitable]):
        async def _wrapped():
            await db_config.init_db(str(tmp_path / "nudge.db"))
            try:
                return await fn()
            finally:
                await db_config.close_db()

        return asyncio.run(_wrapped())

    return runner
