import storage.db_config as db_config
from datamodel import *
from logger import logger

__all__ = ["create_user_if_not_exists", "get_user_by_id", "set_user_timezone"]


async def create_user_if_not_exists(user_id: int, user_name: str | None = None, timezone: str | None = None) -> None:
    """如果用户不存在则创建新用户"""
    conn = db_config.ensure_conn()
    async with conn.execute("SELECT COUNT(1) FROM users WHERE user_id = ?", (user_id,)) as cursor:
        row = await cursor.fetchone()
        exists = row[0] if row else 0
    if not exists:
        logger.info(f"创建新用户: user_id={user_id}, user_name={user_name}, timezone={timezone}")
        await conn.execute(
            "INSERT INTO users (user_id, user_name, timezone) VALUES (?, ?, ?)",
            (user_id, user_name, timezone),
        )
        await conn.commit()


async def get_user_by_id(user_id: int) -> UserInfo | None:
    """通过用户 ID 获取用户信息"""
    conn = db_config.ensure_conn()
    async with conn.execute("SELECT user_id, user_name, timezone FROM users WHERE user_id = ?", (user_id,)) as cursor:
        row = await cursor.fetchone()
    if row is None:
        return None
    return UserInfo(user_id=row[0], user_name=row[1], timezone=row[2])


async def set_user_timezone(user_id: int, timezone: str) -> None:
    conn = db_config.ensure_conn()
    await conn.execute(
        "UPDATE users SET timezone = ?, updated_at_utc = CURRENT_TIMESTAMP WHERE user_id = ?",
        (timezone, user_id),
    )
    await conn.commit()
    logger.info(f"用户时区已更新: user_id={user_id}, timezone={timezone}")
