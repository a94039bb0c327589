from __future__ import annotations

import pytest

from conftest import FakeClock, FakeGateway, utc
from config.prompts import LOCATION_QUESTION, LOCATION_RETRY
from core.coordinator import Coordinator
from core.identity import generate_reminder_id
from core.session import UserSession
from datamodel import ChannelType, IncomingMessage
from llm.base import LLMClient
from llm.middleware import LLMMiddleware
from world.reminder import ReminderScheduler
import storage.message as message_storage
import storage.reminder as reminder_storage
import storage.user as user_storage

USER_ID = 1
CHAT_ID = 501


class ScriptedLLM(LLMClient):
    model = "scripted"

    def __init__(self, *replies: str) -> None:
        self.replies = list(replies)
        self.calls: list[list[dict]] = []

    async def complete(self, turns) -> str:
        self.calls.append(list(turns))
        return self.replies.pop(0) if self.replies else ""


def _reply(message: str, internal: str) -> str:
    return (
        "------ message content ------\n"
        f"{message}\n"
        "------ internal message ------\n"
        f"{internal}\n"
        "------ internal message end ------"
    )


def _msg(content: str) -> IncomingMessage:
    return IncomingMessage(
        channel_type=ChannelType.TELEGRAM_BOT_POLLING,
        user_id=USER_ID,
        chat_id=CHAT_ID,
        display_name="Ann",
        content=content,
    )


def _build(llm: LLMClient, *, fast: LLMClient | None = None, timezone: str | None = "Europe/Berlin"):
    clock = FakeClock(utc(2025, 5, 31, 12))
    gateway = FakeGateway()
    scheduler = ReminderScheduler(gateway.send_message, clock=clock)
    coordinator = Coordinator(
        llm_client=llm,
        gateway=gateway,
        scheduler=scheduler,
        middleware=LLMMiddleware(fast or llm),
        default_timezone=timezone,
        clock=clock,
    )
    session = UserSession(user_id=USER_ID, chat_id=CHAT_ID, display_name="Ann")
    return coordinator, gateway, scheduler, session


def test_reminder_request_creates_reminder_and_hides_directive(run_db):
    llm = ScriptedLLM(_reply(
        "Sure, I'll remind you tomorrow at 9.",
        "REMINDER: call mom, 2025-06-01 09:00:00, Call your mother now",
    ))
    coordinator, gateway, scheduler, session = _build(llm)

    async def scenario():
        await coordinator.handle_message(session, _msg("remind me to call mom tomorrow 9am"))
        return await reminder_storage.list_reminders(), await message_storage.get_messages_by_user_id(USER_ID)

    reminders, stored_turns = run_db(scenario)

    assert gateway.sent == [(CHAT_ID, "Sure, I'll remind you tomorrow at 9.")]
    assert len(reminders) == 1
    reminder = reminders[0]
    assert reminder.reminder_id == generate_reminder_id("call mom")
    assert reminder.notification_text == "Call your mother now"
    assert reminder.time_to_notify_utc == utc(2025, 6, 1, 7)  # 09:00 CEST
    assert reminder.key in scheduler.timers

    # 模型看到的是 system prompt + 用户名 + 带时间前缀的历史
    turns = llm.calls[0]
    assert turns[0]["role"] == "system"
    assert turns[1] == {"role": "user", "content": "my name is Ann"}
    assert turns[-1]["content"] == (
        "The datetime is 2025-05-31 14:00:00 (Europe/Berlin). remind me to call mom tomorrow 9am"
    )

    # 完整回复 (包括内部消息) 写入历史
    assert [t.role for t in stored_turns] == ["user", "assistant"]
    assert "REMINDER: call mom" in stored_turns[-1].content


def test_cancel_directive_removes_reminder(run_db):
    llm = ScriptedLLM(
        _reply("Will do.", "REMINDER: call mom, 2025-06-01 09:00:00, Call your mother now"),
        _reply("Cancelled it.", "CANCEL call mom"),
    )
    coordinator, gateway, scheduler, session = _build(llm)

    async def scenario():
        await coordinator.handle_message(session, _msg("remind me to call mom tomorrow 9am"))
        await coordinator.handle_message(session, _msg("never mind about mom"))
        return await reminder_storage.list_reminders()

    reminders = run_db(scenario)

    assert reminders == []
    assert len(scheduler.timers) == 0
    assert gateway.sent[-1] == (CHAT_ID, "Cancelled it.")
    # 第二次调用带上了第一次的完整往来
    assert len(llm.calls[1]) == len(llm.calls[0]) + 2


def test_plain_chat_creates_nothing(run_db):
    llm = ScriptedLLM(_reply("Hello Ann!", "NONE"))
    coordinator, gateway, scheduler, session = _build(llm)

    async def scenario():
        await coordinator.handle_message(session, _msg("hi"))
        return await reminder_storage.list_reminders()

    assert run_db(scenario) == []
    assert gateway.sent == [(CHAT_ID, "Hello Ann!")]
    assert len(scheduler.timers) == 0


def test_malformed_directive_is_dropped_but_message_sent(run_db):
    llm = ScriptedLLM(_reply("Okay!", "REMINDER: call mom, tomorrow at nine, Call your mother"))
    coordinator, gateway, scheduler, session = _build(llm)

    async def scenario():
        await coordinator.handle_message(session, _msg("remind me"))
        return await reminder_storage.list_reminders()

    assert run_db(scenario) == []
    assert gateway.sent == [(CHAT_ID, "Okay!")]


def test_past_reminder_time_is_dropped(run_db):
    llm = ScriptedLLM(_reply("Done.", "REMINDER: call mom, 2025-05-30 09:00:00, Call your mother"))
    coordinator, gateway, scheduler, session = _build(llm)

    async def scenario():
        await coordinator.handle_message(session, _msg("remind me yesterday"))
        return await reminder_storage.list_reminders()

    assert run_db(scenario) == []
    assert len(scheduler.timers) == 0
    assert gateway.sent == [(CHAT_ID, "Done.")]


def test_empty_llm_reply_sends_nothing(run_db):
    llm = ScriptedLLM("   ")
    coordinator, gateway, scheduler, session = _build(llm)

    async def scenario():
        await coordinator.handle_message(session, _msg("hi"))
        return await message_storage.get_messages_by_user_id(USER_ID)

    stored_turns = run_db(scenario)

    assert gateway.sent == []
    assert [t.role for t in stored_turns] == ["user"]
    assert gateway.typing_stopped == [CHAT_ID]


def test_history_is_loaded_once_from_database(run_db):
    llm = ScriptedLLM(_reply("Hi again.", "NONE"))
    coordinator, gateway, scheduler, session = _build(llm)

    async def scenario():
        await message_storage.create_message(USER_ID, "user", "earlier question")
        await message_storage.create_message(USER_ID, "assistant", "earlier answer")
        await coordinator.handle_message(session, _msg("hello"))

    run_db(scenario)

    contents = [t["content"] for t in llm.calls[0][2:]]
    assert contents[:2] == ["earlier question", "earlier answer"]
    assert session.hydrated is True
    assert len(session.history) == 4


def test_unknown_timezone_starts_location_dialogue(run_db):
    main_llm = ScriptedLLM(_reply("Hello!", "NONE"))
    fast_llm = ScriptedLLM("Mars/Olympus|no idea", "Europe/Berlin|Berlin is in Germany")
    coordinator, gateway, scheduler, session = _build(main_llm, fast=fast_llm, timezone=None)

    async def scenario():
        await coordinator.handle_message(session, _msg("hi"))
        await coordinator.handle_message(session, _msg("on mars"))
        await coordinator.handle_message(session, _msg("Berlin"))
        tz_after_dialogue = (await user_storage.get_user_by_id(USER_ID)).timezone
        await coordinator.handle_message(session, _msg("hi again"))
        return tz_after_dialogue

    timezone = run_db(scenario)

    texts = [text for _, text in gateway.sent]
    assert texts[0] == LOCATION_QUESTION
    assert texts[1] == LOCATION_RETRY
    assert texts[2].startswith("Got it, I'll use the Europe/Berlin timezone")
    assert texts[3] == "Hello!"
    assert timezone == "Europe/Berlin"
    assert len(main_llm.calls) == 1
    assert session.awaiting_location is False


def test_llm_failure_still_stops_typing(run_db):
    class FailingLLM(LLMClient):
        model = "failing"

        async def complete(self, turns) -> str:
            raise RuntimeError("upstream 500")

    coordinator, gateway, scheduler, session = _build(FailingLLM())

    async def scenario():
        with pytest.raises(RuntimeError):
            await coordinator.handle_message(session, _msg("hi"))

    run_db(scenario)

    assert gateway.sent == []
    assert gateway.typing_stopped == [CHAT_ID]


def test_reminder_request_waits_for_timezone(run_db):
    main_llm = ScriptedLLM(_reply(
        "Sure, I'll remind you tomorrow at 9.",
        "REMINDER: call mom, 2025-06-01 09:00:00, Call your mother now",
    ))
    coordinator, gateway, scheduler, session = _build(main_llm, timezone=None)

    async def scenario():
        await coordinator.handle_message(session, _msg("remind me to call mom tomorrow 9am"))
        return await reminder_storage.list_reminders()

    reminders = run_db(scenario)

    assert main_llm.calls == []
    assert reminders == []
    assert len(scheduler.timers) == 0
    assert gateway.sent == [(CHAT_ID, LOCATION_QUESTION)]
    assert session.awaiting_location is True
