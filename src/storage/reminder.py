"""提醒存储

同一用户下 reminder_id 唯一; 重复写入同一 reminder_id 时覆盖旧记录。
时间统一以 UTC 字符串 "YYYY-MM-DD HH:MM:SS" 落库。
"""

import storage.db_config as db_config
from datamodel import Reminder
from logger import logger
from utils import format_utc, parse_utc

__all__ = [
    "upsert_reminder",
    "get_reminder",
    "list_reminders",
    "list_reminders_by_user_id",
    "delete_reminder",
]

_COLUMNS = "user_id, chat_id, reminder_id, reminder_text, notification_text, time_to_notify_utc, created_at_utc"


def _row_to_reminder(row) -> Reminder:
    return Reminder(
        user_id=row[0],
        chat_id=row[1],
        reminder_id=row[2],
        reminder_text=row[3],
        notification_text=row[4],
        time_to_notify_utc=parse_utc(row[5]),
        created_at_utc=row[6],
    )


async def upsert_reminder(reminder: Reminder) -> Reminder:
    """创建提醒, 已存在同 ID 提醒时覆盖; 返回落库后的记录"""
    conn = db_config.ensure_conn()
    await conn.execute(
        "INSERT INTO reminders (user_id, chat_id, reminder_id, reminder_text, notification_text, time_to_notify_utc) "
        "VALUES (?, ?, ?, ?, ?, ?) "
        "ON CONFLICT (user_id, reminder_id) DO UPDATE SET "
        "chat_id = excluded.chat_id, reminder_text = excluded.reminder_text, "
        "notification_text = excluded.notification_text, time_to_notify_utc = excluded.time_to_notify_utc, "
        "created_at_utc = CURRENT_TIMESTAMP",
        (
            reminder.user_id,
            reminder.chat_id,
            reminder.reminder_id,
            reminder.reminder_text,
            reminder.notification_text,
            format_utc(reminder.time_to_notify_utc),
        )
    )
    await conn.commit()
    logger.trace(
        f"写入提醒: user_id={reminder.user_id}, reminder_id={reminder.reminder_id}, "
        f"time_to_notify_utc={format_utc(reminder.time_to_notify_utc)}"
    )
    stored = await get_reminder(reminder.user_id, reminder.reminder_id)
    if stored is None:
        raise RuntimeError(f"提醒写入后读取失败: user_id={reminder.user_id}, reminder_id={reminder.reminder_id}")
    return stored


async def get_reminder(user_id: int, reminder_id: str) -> Reminder | None:
    conn = db_config.ensure_conn()
    async with conn.execute(
        f"SELECT {_COLUMNS} FROM reminders WHERE user_id = ? AND reminder_id = ?",
        (user_id, reminder_id)
    ) as cursor:
        row = await cursor.fetchone()
    return _row_to_reminder(row) if row else None


async def list_reminders() -> list[Reminder]:
    """获取所有提醒"""
    conn = db_config.ensure_conn()
    async with conn.execute(f"SELECT {_COLUMNS} FROM reminders ORDER BY time_to_notify_utc") as cursor:
        rows = await cursor.fetchall()
    return [_row_to_reminder(row) for row in rows]


async def list_reminders_by_user_id(user_id: int) -> list[Reminder]:
    conn = db_config.ensure_conn()
    async with conn.execute(
        f"SELECT {_COLUMNS} FROM reminders WHERE user_id = ? ORDER BY time_to_notify_utc",
        (user_id,)
    ) as cursor:
        rows = await cursor.fetchall()
    return [_row_to_reminder(row) for row in rows]


async def delete_reminder(user_id: int, reminder_id: str) -> bool:
    """删除提醒，返回是否确实删除了记录"""
    conn = db_config.ensure_conn()
    async with conn.execute(
        "DELETE FROM reminders WHERE user_id = ? AND reminder_id = ?",
        (user_id, reminder_id)
    ) as cursor:
        deleted = cursor.rowcount > 0
    await conn.commit()
    logger.trace(f"删除提醒: user_id={user_id}, reminder_id={reminder_id}, deleted={deleted}")
    return deleted
