import os
import sys
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from logger import logger
load_dotenv()

__all__ = [
    "ENABLE_TELEGRAM_BOT_POLLING", "TELEGRAM_BOT_TOKEN",
    "ALLOWED_TELEGRAM_USER_IDS", "ADMIN_TELEGRAM_USER_ID",
    "LLM_PROVIDER", "OPENAI_PRIMARY_API_KEY", "OPENAI_PRIMARY_BASE_URL", "GEMINI_API_KEY", "GEMINI_BASE_URL",
    "LLM_MAIN_MODEL", "LLM_FAST_MODEL",
    "DEFAULT_USER_TIMEZONE", "REMINDER_MISSED_POLICY",
    "DB_PATH", "LOG_FILE",
    "ADMIN_HTTP_ENABLED", "ADMIN_HTTP_HOST", "ADMIN_HTTP_PORT", "ADMIN_AUTH_TOKEN",
]


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def _parse_id_list(name: str) -> list[int]:
    raw = os.getenv(name, "")
    ids: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            logger.warning(f"{name} 中包含非法 ID: {part}, 已忽略")
    return ids


# Telegram Bot
ENABLE_TELEGRAM_BOT_POLLING = _parse_bool("ENABLE_TELEGRAM_BOT_POLLING", True)
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
if ENABLE_TELEGRAM_BOT_POLLING and TELEGRAM_BOT_TOKEN == "":
    logger.critical("已启用 Telegram Bot Polling, 但 TELEGRAM_BOT_TOKEN 未设置")
    sys.exit(1)

ALLOWED_TELEGRAM_USER_IDS = _parse_id_list("ALLOWED_TELEGRAM_USER_IDS")  # 为空表示不限制
ADMIN_TELEGRAM_USER_ID = int(os.getenv("ADMIN_TELEGRAM_USER_ID", "0"))


# LLM 设置
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").strip().lower()
if LLM_PROVIDER not in ("openai", "gemini"):
    logger.critical(f"LLM_PROVIDER 非法: {LLM_PROVIDER}, 仅支持 openai 或 gemini")
    sys.exit(1)

OPENAI_PRIMARY_API_KEY = os.getenv("OPENAI_PRIMARY_API_KEY")
OPENAI_PRIMARY_BASE_URL = os.getenv("OPENAI_PRIMARY_BASE_URL", "https://api.openai.com/v1")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL")

if LLM_PROVIDER == "openai" and OPENAI_PRIMARY_API_KEY is None:
    logger.critical("当前 LLM_PROVIDER=openai, 但 OPENAI_PRIMARY_API_KEY 未设置")
    sys.exit(1)

if LLM_PROVIDER == "gemini" and GEMINI_API_KEY is None:
    logger.critical("当前 LLM_PROVIDER=gemini, 但 GEMINI_API_KEY 未设置")
    sys.exit(1)

LLM_MAIN_MODEL = os.getenv("LLM_MAIN_MODEL", "gpt-4o")
LLM_FAST_MODEL = os.getenv("LLM_FAST_MODEL", "gpt-4o-mini")  # 用于位置->时区等辅助调用


# 提醒
# 新用户的默认时区; 留空则首次对话时询问用户所在地
DEFAULT_USER_TIMEZONE = os.getenv("DEFAULT_USER_TIMEZONE", "").strip() or None
if DEFAULT_USER_TIMEZONE is not None:
    try:
        ZoneInfo(DEFAULT_USER_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"DEFAULT_USER_TIMEZONE 非法: {DEFAULT_USER_TIMEZONE}, 已忽略")
        DEFAULT_USER_TIMEZONE = None

# 重启时已过期的提醒: "fire" 立即补发, "drop" 直接清除
REMINDER_MISSED_POLICY = os.getenv("REMINDER_MISSED_POLICY", "fire").strip().lower()
if REMINDER_MISSED_POLICY not in ("fire", "drop"):
    logger.warning(f"REMINDER_MISSED_POLICY 非法: {REMINDER_MISSED_POLICY}, 已回退到 fire")
    REMINDER_MISSED_POLICY = "fire"


# 存储与日志
DB_PATH = os.getenv("DB_PATH", "data/nudge.db")
LOG_FILE = os.getenv("LOG_FILE", "logs/nudge.log")


# Admin API
ADMIN_HTTP_ENABLED = _parse_bool("ADMIN_HTTP_ENABLED", True)
ADMIN_HTTP_HOST = os.getenv("ADMIN_HTTP_HOST", "127.0.0.1")
ADMIN_HTTP_PORT = int(os.getenv("ADMIN_HTTP_PORT", "18080"))
ADMIN_AUTH_TOKEN = os.getenv("ADMIN_AUTH_TOKEN", "")
