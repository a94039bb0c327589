import asyncio

from logger import logger
from events import bus, E
from datamodel import IncomingMessage
from core.coordinator import Coordinator
from core.session import UserSession

__all__ = ["SessionManager", "configure_session_manager", "require_session_manager"]


class SessionManager:
    """按用户管理会话，每个用户一个 worker，不同用户之间并发处理"""

    def __init__(self, coordinator: Coordinator) -> None:
        self.coordinator = coordinator
        self._sessions: dict[int, UserSession] = {}
        self._workers: dict[int, asyncio.Task[None]] = {}

    def get(self, user_id: int) -> UserSession | None:
        return self._sessions.get(user_id)

    def get_or_create(self, msg: IncomingMessage) -> UserSession:
        session = self._sessions.get(msg.user_id)
        if session is None:
            session = UserSession(user_id=msg.user_id, chat_id=msg.chat_id, display_name=msg.display_name)
            self._sessions[msg.user_id] = session
            logger.info(f"创建用户会话: user_id={msg.user_id}")
        return session

    def start_user_worker_if_needed(self, session: UserSession) -> None:
        worker = self._workers.get(session.user_id)
        if worker is not None and not worker.done():
            return

        worker = asyncio.create_task(
            session.run_loop(self.coordinator.handle_message),
            name=f"session-user-{session.user_id}",
        )
        self._workers[session.user_id] = worker
        logger.info(f"已启动用户 worker: user_id={session.user_id}")

    def enqueue_incoming(self, msg: IncomingMessage) -> None:
        session = self.get_or_create(msg)
        self.start_user_worker_if_needed(session)
        session.enqueue(msg)

    async def join(self) -> None:
        """等待所有已入队消息处理完毕"""
        await asyncio.gather(*(session.inbox.join() for session in self._sessions.values()))

    def get_status(self) -> dict[str, object]:
        return {
            "sessions": len(self._sessions),
            "active_workers": sum(1 for w in self._workers.values() if not w.done()),
            "queued_messages": sum(s.inbox.qsize() for s in self._sessions.values()),
        }

    async def shutdown(self) -> None:
        if not self._workers:
            return

        logger.info("正在关闭 SessionManager...")
        workers = list(self._workers.items())
        for _, task in workers:
            task.cancel()

        results = await asyncio.gather(*(task for _, task in workers), return_exceptions=True)
        for (user_id, _), result in zip(workers, results):
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                logger.error(f"关闭用户 worker 时发生异常: user_id={user_id}, error={result}")

        self._workers.clear()
        self._sessions.clear()
        logger.info("SessionManager 已关闭")


_session_manager: SessionManager | None = None


def configure_session_manager(manager: SessionManager | None) -> None:
    global _session_manager
    _session_manager = manager


def require_session_manager() -> SessionManager:
    if _session_manager is None:
        raise RuntimeError("SessionManager 尚未配置，请先调用 configure_session_manager()")
    return _session_manager


@bus.on(E.IO_MESSAGE_RECEIVED)
async def handle_incoming_message(msg: IncomingMessage) -> None:
    logger.info(f"收到来自用户 {msg.user_id} 的消息，准备入队")
    require_session_manager().enqueue_incoming(msg)
