"""模型回复解析

模型回复分为两段：
- 消息内容 (message content)：原样发给用户；
- 内部消息 (internal message)：不展示给用户，携带一条调度指令。

    ------ message content ------
    好的，明早九点提醒你。
    ------ internal message ------
    REMINDER: call mom, 2025-06-01 09:00:00, Call your mother now
    ------ internal message end ------

内部消息只接受三种形式 (关键字不区分大小写)：
- NONE
- CANCEL <reminder text>
- REMINDER: <reminder text>, <YYYY-MM-DD HH:MM:SS>, <notification text>

解析为纯函数，不做任何 I/O；时间保持为用户本地的 naive datetime，由调用方结合用户时区换算。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from utils import SECOND_FORMAT

__all__ = [
    "MESSAGE_CONTENT_MARKER", "INTERNAL_MESSAGE_MARKER", "INTERNAL_MESSAGE_END_MARKER",
    "NoDirective", "NewReminder", "CancelReminder", "MalformedDirective", "Directive",
    "ParsedReply", "parse_reply", "parse_directive",
]

MESSAGE_CONTENT_MARKER = "------ message content ------"
INTERNAL_MESSAGE_MARKER = "------ internal message ------"
INTERNAL_MESSAGE_END_MARKER = "------ internal message end ------"

_TIME_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}")
_CANCEL_PATTERN = re.compile(r"CANCEL(?:\s+(?P<text>.*))?", re.IGNORECASE | re.DOTALL)
_REMINDER_PATTERN = re.compile(r"REMINDER:(?P<body>.*)", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class NoDirective:
    pass


@dataclass(frozen=True)
class NewReminder:
    reminder_text: str
    time_to_notify_local: datetime  # naive, 用户本地时间
    notification_text: str


@dataclass(frozen=True)
class CancelReminder:
    reminder_text: str


@dataclass(frozen=True)
class MalformedDirective:
    reason: str
    raw: str = ""


Directive = Union[NoDirective, NewReminder, CancelReminder, MalformedDirective]


@dataclass(frozen=True)
class ParsedReply:
    message: str  # 发给用户的部分
    directive: Directive


def _split_sections(raw: str) -> tuple[str, str | None, bool]:
    """拆分出 (用户可见部分, 内部消息, 内部消息是否完整闭合)"""
    visible = raw
    internal: str | None = None
    closed = True

    start = raw.find(INTERNAL_MESSAGE_MARKER)
    if start != -1:
        visible = raw[:start]
        rest = raw[start + len(INTERNAL_MESSAGE_MARKER):]
        end = rest.find(INTERNAL_MESSAGE_END_MARKER)
        if end == -1:
            internal = rest
            closed = False
        else:
            internal = rest[:end]
            visible += rest[end + len(INTERNAL_MESSAGE_END_MARKER):]

    content_start = visible.find(MESSAGE_CONTENT_MARKER)
    if content_start != -1:
        visible = visible[content_start + len(MESSAGE_CONTENT_MARKER):]

    return visible.strip(), internal, closed


def parse_directive(internal: str | None) -> Directive:
    """解析内部消息中的指令; None 表示回复中没有内部消息"""
    if internal is None:
        return NoDirective()

    text = internal.strip()
    if not text or text.upper() == "NONE":
        return NoDirective()

    cancel_match = _CANCEL_PATTERN.fullmatch(text)
    if cancel_match is not None:
        reminder_text = (cancel_match.group("text") or "").strip()
        if not reminder_text:
            return MalformedDirective("CANCEL 缺少提醒文本", raw=text)
        return CancelReminder(reminder_text=reminder_text)

    reminder_match = _REMINDER_PATTERN.fullmatch(text)
    if reminder_match is None:
        return MalformedDirective("无法识别的指令", raw=text)

    fields = [field.strip() for field in reminder_match.group("body").split(",", 2)]
    if len(fields) != 3 or not all(fields):
        return MalformedDirective("REMINDER 字段不完整", raw=text)

    reminder_text, time_str, notification_text = fields
    if _TIME_PATTERN.fullmatch(time_str) is None:
        return MalformedDirective(f"时间格式不符合 YYYY-MM-DD HH:MM:SS: {time_str}", raw=text)
    try:
        time_to_notify_local = datetime.strptime(time_str, SECOND_FORMAT)
    except ValueError:
        return MalformedDirective(f"无效的日期时间: {time_str}", raw=text)

    return NewReminder(
        reminder_text=reminder_text,
        time_to_notify_local=time_to_notify_local,
        notification_text=notification_text,
    )


def parse_reply(raw: str) -> ParsedReply:
    visible, internal, closed = _split_sections(raw)
    if not closed:
        return ParsedReply(message=visible, directive=MalformedDirective("内部消息缺少结束标记", raw=internal or ""))
    return ParsedReply(message=visible, directive=parse_directive(internal))
