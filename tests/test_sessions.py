from __future__ import annotations

import asyncio

from core.orchestrator import SessionManager
from datamodel import ChannelType, IncomingMessage


class RecordingCoordinator:
    """按到达顺序记录消息; 每个用户的第一条消息处理得最慢"""

    def __init__(self) -> None:
        self.handled: list[tuple[int, str]] = []
        self.active: dict[int, int] = {}
        self.max_active_per_user = 0

    async def handle_message(self, session, msg: IncomingMessage) -> None:
        self.active[msg.user_id] = self.active.get(msg.user_id, 0) + 1
        self.max_active_per_user = max(self.max_active_per_user, self.active[msg.user_id])
        await asyncio.sleep(0.05 if msg.content.endswith("#0") else 0)
        if msg.content == "boom":
            self.active[msg.user_id] -= 1
            raise RuntimeError("handler failed")
        self.handled.append((msg.user_id, msg.content))
        self.active[msg.user_id] -= 1


def _msg(user_id: int, content: str) -> IncomingMessage:
    return IncomingMessage(
        channel_type=ChannelType.TELEGRAM_BOT_POLLING,
        user_id=user_id,
        chat_id=user_id,
        display_name=f"user{user_id}",
        content=content,
    )


def test_messages_of_one_user_are_handled_in_order():
    coordinator = RecordingCoordinator()

    async def scenario():
        manager = SessionManager(coordinator)
        for i in range(3):
            manager.enqueue_incoming(_msg(1, f"u1 #{i}"))
            manager.enqueue_incoming(_msg(2, f"u2 #{i}"))
        await asyncio.wait_for(manager.join(), timeout=5)
        status = manager.get_status()
        await manager.shutdown()
        return status

    status = asyncio.run(scenario())

    assert [c for u, c in coordinator.handled if u == 1] == ["u1 #0", "u1 #1", "u1 #2"]
    assert [c for u, c in coordinator.handled if u == 2] == ["u2 #0", "u2 #1", "u2 #2"]
    assert coordinator.max_active_per_user == 1
    assert status["sessions"] == 2
    assert status["queued_messages"] == 0


def test_failed_message_does_not_stop_the_worker():
    coordinator = RecordingCoordinator()

    async def scenario():
        manager = SessionManager(coordinator)
        manager.enqueue_incoming(_msg(1, "boom"))
        manager.enqueue_incoming(_msg(1, "after"))
        await asyncio.wait_for(manager.join(), timeout=5)
        await manager.shutdown()

    asyncio.run(scenario())

    assert coordinator.handled == [(1, "after")]


def test_same_session_is_reused_per_user():
    async def scenario():
        manager = SessionManager(RecordingCoordinator())
        first = manager.get_or_create(_msg(1, "a"))
        second = manager.get_or_create(_msg(1, "b"))
        other = manager.get_or_create(_msg(2, "c"))
        return first, second, other

    first, second, other = asyncio.run(scenario())

    assert first is second
    assert first is not other
