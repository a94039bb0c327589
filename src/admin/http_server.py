"""Admin API 的 uvicorn 宿主

与 Bot 运行在同一个事件循环里; 收到 shutdown_event 后让 uvicorn 优雅退出。
"""

from __future__ import annotations

import asyncio
import time

import uvicorn
from config.settings import ADMIN_HTTP_HOST, ADMIN_HTTP_PORT
from logger import logger

from .app import create_app
from .schemas import RuntimeControl


def build_server(shutdown_event: asyncio.Event) -> uvicorn.Server:
    control = RuntimeControl(shutdown_event=shutdown_event, started_at=time.time())
    config = uvicorn.Config(
        create_app(control),
        host=ADMIN_HTTP_HOST,
        port=ADMIN_HTTP_PORT,
        log_config=None,  # 使用已转发到 loguru 的 root logger
        access_log=False,
    )
    server = uvicorn.Server(config)
    server.install_signal_handlers = lambda: None  # 信号由 main.py 统一处理
    return server


async def main_loop(shutdown_event: asyncio.Event) -> None:
    server = build_server(shutdown_event)
    serve_task = asyncio.create_task(server.serve(), name="admin-http")
    stop_task = asyncio.create_task(shutdown_event.wait(), name="admin-http-stop")
    logger.info(f"Admin HTTP 服务准备启动: http://{ADMIN_HTTP_HOST}:{ADMIN_HTTP_PORT}")

    try:
        done, _ = await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if stop_task in done:
            server.should_exit = True
        await serve_task
    finally:
        stop_task.cancel()
        logger.info("Admin HTTP 服务已关闭")
