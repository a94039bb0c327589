import storage.db_config as db_config
from datamodel import ConversationTurn
from logger import logger
from ulid import ULID

__all__ = [
    "create_message",
    "get_messages_by_user_id",
]


async def create_message(user_id: int, role: str, content: str) -> str:
    """创建新消息记录，返回消息 ID"""
    conn = db_config.ensure_conn()
    if role not in ("user", "assistant"):
        logger.error(f"无效的消息角色: {role}, 该消息不会存入数据库")
        return ""

    message_id = str(ULID())
    await conn.execute(
        "INSERT INTO messages (message_id, user_id, role, content) VALUES (?, ?, ?, ?)",
        (message_id, user_id, role, content)
    )
    await conn.commit()
    logger.trace(f"保存消息: user_id={user_id}, role={role}, message_id={message_id}")
    return message_id


async def get_messages_by_user_id(user_id: int) -> list[ConversationTurn]:
    """获取某用户的全部消息，按写入顺序排列"""
    conn = db_config.ensure_conn()
    turns: list[ConversationTurn] = []
    async with conn.execute(
        "SELECT role, content, created_at_utc FROM messages WHERE user_id = ? ORDER BY seq ASC",
        (user_id,)
    ) as cursor:
        async for row in cursor:
            turns.append(ConversationTurn(role=row[0], content=row[1], timestamp=row[2]))
    return turns
