import aiosqlite
import os
from pathlib import Path

from logger import logger


conn: aiosqlite.Connection | None = None

_SQL_DIR = Path(__file__).with_name("sql")


async def init_db(db_path: str) -> None:
    db_dir = os.path.dirname(db_path)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)
    global conn
    conn = await aiosqlite.connect(db_path)

    async with conn.execute("PRAGMA user_version") as cursor:
        row = await cursor.fetchone()
        user_version = row[0]

    if user_version == 0:
        init_sql = (_SQL_DIR / "db_init_v1.sql").read_text(encoding="utf-8")
        await conn.executescript(init_sql)
        await conn.execute("PRAGMA user_version = 1")
        logger.info(f"数据库已初始化: {db_path}")

    # 数据库升级逻辑可以在这里继续添加
    await conn.commit()


async def close_db() -> None:
    global conn
    if conn is not None:
        await conn.close()
        conn = None


def ensure_conn() -> aiosqlite.Connection:
    if conn is None:
        raise RuntimeError("数据库未初始化，请先调用 init_db()")
    return conn

__all__ = ["conn", "init_db", "close_db", "ensure_conn"]
