import hashlib

__all__ = ["generate_reminder_id"]


def generate_reminder_id(reminder_text: str) -> str:
    """由提醒文本推导提醒 ID

    只依赖文本本身 (与用户、时间、通知内容无关)，跨进程稳定，
    因此 `CANCEL <text>` 可以直接定位到之前用同一文本创建的提醒。
    """
    return hashlib.sha256(reminder_text.encode("utf-8")).hexdigest()
