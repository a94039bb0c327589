from datetime import datetime, timezone
from zoneinfo import ZoneInfo

__all__ = ["SECOND_FORMAT", "now_utc", "ensure_utc", "user_local_to_utc", "utc_to_user_local",
           "utc_to_user_local_str", "format_utc", "parse_utc"]

SECOND_FORMAT = "%Y-%m-%d %H:%M:%S"

def now_utc() -> datetime:
    """获取当前 UTC 时间"""
    return datetime.now(timezone.utc)

def ensure_utc(dt: datetime) -> datetime:
    """无时区信息的时间按 UTC 处理"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def user_local_to_utc(local_dt: datetime, user_tz: str) -> datetime:
    # local_dt: 用户本地的 naive 时间; 夏令时重叠时刻取 fold=0
    local_dt = local_dt.replace(tzinfo=ZoneInfo(user_tz))
    return local_dt.astimezone(timezone.utc)

def utc_to_user_local(utc_dt: datetime, user_tz: str) -> datetime:
    return ensure_utc(utc_dt).astimezone(ZoneInfo(user_tz))

def utc_to_user_local_str(utc_dt: datetime, user_tz: str) -> str:
    return utc_to_user_local(utc_dt, user_tz).strftime(SECOND_FORMAT)

def format_utc(dt: datetime) -> str:
    """UTC 时间 -> 存储格式 'YYYY-MM-DD HH:MM:SS'"""
    return ensure_utc(dt).strftime(SECOND_FORMAT)

def parse_utc(raw: str) -> datetime:
    """存储格式 'YYYY-MM-DD HH:MM:SS' -> aware UTC 时间"""
    return datetime.strptime(raw, SECOND_FORMAT).replace(tzinfo=timezone.utc)
