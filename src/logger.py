"""日志模块

进程入口调用一次 setup_logging，其余模块 `from logger import logger` 后直接写日志。
未调用 setup_logging 时 (例如测试) 沿用 loguru 默认的 stderr 输出。

sink 布局：
- stderr: 彩色输出, 默认 INFO;
- <log_file>: 全量日志, 按 10 MB 轮转, 保留 30 天;
- <log_file 同名>_error: 只记录 ERROR 及以上, 保留 90 天。

python-telegram-bot / httpx / uvicorn 走标准库 logging，这里统一转发到 loguru。
级别名兼容 WARN / FATAL 写法。
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Literal, Union

from loguru import logger

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARN", "WARNING", "ERROR", "CRITICAL", "FATAL"]

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level:<8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"

# 第三方库的轮询/请求日志过于频繁, 只保留警告
QUIET_LIBRARIES = ("httpx", "httpcore", "telegram.ext", "apscheduler")


def _level_name(level: Union[str, LogLevel]) -> str:
    name = str(level).upper()
    return {"FATAL": "CRITICAL", "WARN": "WARNING"}.get(name, name)


class _InterceptHandler(logging.Handler):
    """把标准库 logging 的记录转交给 loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Union[str, int] = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # 跳过 logging 模块自身的栈帧, 让 loguru 显示真实的调用位置
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _route_stdlib_logging() -> None:
    logging.basicConfig(handlers=[_InterceptHandler()], level=logging.INFO, force=True)
    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging(
    log_level: LogLevel,
    log_file: Union[str, Path],
    console_level: LogLevel = "INFO",
) -> None:
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    error_log_file = log_file.with_name(f"{log_file.stem}_error{log_file.suffix}")

    rotating = {"format": FILE_FORMAT, "rotation": "10 MB", "compression": "zip", "encoding": "utf-8", "enqueue": True}
    logger.configure(
        handlers=[
            {"sink": sys.stderr, "level": _level_name(console_level), "format": CONSOLE_FORMAT, "colorize": True},
            {"sink": log_file, "level": _level_name(log_level), "retention": "30 days", **rotating},
            {"sink": error_log_file, "level": "ERROR", "retention": "90 days", **rotating},
        ]
    )
    _route_stdlib_logging()


__all__ = ["setup_logging", "logger"]
