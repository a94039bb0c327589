"""提醒调度器

每条提醒的状态机：PENDING -> FIRING -> DELIVERED，或 PENDING -> CANCELLED。
- 先落库再挂计时器，落库失败时不会挂计时器；
- 撤销时先摘计时器再删记录，撤销返回后该计时器不会再触发；
- 发送成功后删除记录；发送失败时保留记录，等待下次启动时重新挂载；
- 启动时从数据库恢复所有计时器，已过期的提醒按 missed_policy 处理 ("fire" 立即补发 / "drop" 清除)。

所有 "存储 + 计时器" 的组合操作在同一把 asyncio.Lock 下执行；
每次触发在独立 Task 中发送，慢速发送不会阻塞其他计时器。
"""

import asyncio
import time
from typing import Awaitable, Callable, Literal

from datamodel import Reminder
from events import bus, E
from logger import logger
from utils import now_utc, format_utc
from world.timers import JobState, ScheduledJob, TimerSet
import storage.reminder as reminder_storage

__all__ = ["ReminderScheduler", "configure_reminder_scheduler", "require_reminder_scheduler"]

SendMessage = Callable[[int, str], Awaitable[None]]


class ReminderScheduler:
    MAX_IDLE_SECONDS = 1.0  # 最长休眠时间, 保证能及时响应关闭信号

    def __init__(
        self,
        send_message: SendMessage,
        store=reminder_storage,
        missed_policy: Literal["fire", "drop"] = "fire",
        clock: Callable = now_utc,
    ) -> None:
        self._send_message = send_message
        self._store = store
        self._missed_policy = missed_policy
        self._clock = clock

        self._timers = TimerSet()
        self._lock = asyncio.Lock()
        self._wakeup = asyncio.Event()
        self._fire_tasks: set[asyncio.Task[None]] = set()

        self._running = False
        self._last_check_at_epoch: float | None = None

    @property
    def timers(self) -> TimerSet:
        return self._timers

    def get_status(self) -> dict[str, object]:
        next_deadline = self._timers.next_deadline()
        return {
            "running": self._running,
            "last_check_at_epoch": self._last_check_at_epoch,
            "live_timers": len(self._timers),
            "next_deadline_utc": format_utc(next_deadline) if next_deadline else None,
            "firing": len(self._fire_tasks),
            "missed_policy": self._missed_policy,
        }

    async def add_reminder(self, reminder: Reminder) -> Reminder:
        """持久化提醒并挂上计时器; 同一用户下同 ID 的提醒会被替换"""
        async with self._lock:
            stored = await self._store.upsert_reminder(reminder)
            _, replaced = self._timers.arm(stored)
        self._wakeup.set()

        if replaced is not None:
            logger.info(f"替换已有提醒: user_id={stored.user_id}, reminder_id={stored.reminder_id}")
        logger.info(
            f"提醒已创建: user_id={stored.user_id}, text={stored.reminder_text}, "
            f"time_to_notify_utc={format_utc(stored.time_to_notify_utc)}"
        )
        bus.emit(E.REMINDER_CREATED, stored)
        return stored

    async def cancel_reminder_by_reminder_id(self, user_id: int, reminder_id: str) -> bool:
        """撤销提醒; 找不到时返回 False 而不是抛异常"""
        async with self._lock:
            job = self._timers.disarm((user_id, reminder_id))
            deleted = await self._store.delete_reminder(user_id, reminder_id)

        if job is None and not deleted:
            logger.info(f"未找到要撤销的提醒: user_id={user_id}, reminder_id={reminder_id}")
            return False

        logger.info(f"提醒已撤销: user_id={user_id}, reminder_id={reminder_id}, timer={job is not None}, record={deleted}")
        bus.emit(E.REMINDER_CANCELLED, user_id, reminder_id)
        return True

    async def reconcile(self) -> int:
        """从数据库恢复计时器，返回挂载数量; 已挂载的键不会重复挂载"""
        now = self._clock()
        armed = 0
        async with self._lock:
            reminders = await self._store.list_reminders()
            for reminder in reminders:
                if reminder.key in self._timers:
                    logger.debug(f"提醒计时器已存在, 跳过: reminder_id={reminder.reminder_id}")
                    continue

                if reminder.time_to_notify_utc <= now:
                    if self._missed_policy == "drop":
                        try:
                            await self._store.delete_reminder(reminder.user_id, reminder.reminder_id)
                        except Exception as e:
                            logger.opt(exception=e).error(
                                f"清除过期提醒失败, 记录已保留: user_id={reminder.user_id}, "
                                f"reminder_id={reminder.reminder_id}"
                            )
                            continue
                        logger.warning(
                            f"清除已过期的提醒: user_id={reminder.user_id}, text={reminder.reminder_text}, "
                            f"time_to_notify_utc={format_utc(reminder.time_to_notify_utc)}"
                        )
                        continue
                    logger.warning(
                        f"提醒已过期, 立即补发: user_id={reminder.user_id}, text={reminder.reminder_text}, "
                        f"time_to_notify_utc={format_utc(reminder.time_to_notify_utc)}"
                    )
                    self._timers.arm(reminder, due_at=now)
                else:
                    self._timers.arm(reminder)
                armed += 1

        self._wakeup.set()
        logger.info(f"已从数据库恢复 {armed} 个提醒计时器")
        return armed

    async def _fire(self, job: ScheduledJob) -> None:
        reminder = job.reminder
        logger.info(f"触发提醒: user_id={reminder.user_id}, chat_id={reminder.chat_id}, text={reminder.reminder_text}")
        bus.emit(E.REMINDER_TRIGGERED, reminder)

        try:
            await self._send_message(reminder.chat_id, reminder.notification_text)
        except Exception as e:
            # 保留数据库记录，下次启动时重新挂载
            logger.opt(exception=e).error(
                f"提醒发送失败, 记录已保留: user_id={reminder.user_id}, reminder_id={reminder.reminder_id}, error={e}",
            )
            bus.emit(E.REMINDER_DELIVERY_FAILED, reminder)
            return

        async with self._lock:
            if reminder.key in self._timers:
                logger.info(f"提醒在发送期间被替换, 保留新记录: reminder_id={reminder.reminder_id}")
            else:
                try:
                    await self._store.delete_reminder(reminder.user_id, reminder.reminder_id)
                except Exception as e:
                    logger.opt(exception=e).error(f"已发送提醒的记录删除失败: reminder_id={reminder.reminder_id}, error={e}")

        job.state = JobState.DELIVERED
        logger.info(f"提醒已送达: user_id={reminder.user_id}, text={reminder.reminder_text}")
        bus.emit(E.REMINDER_SENT, reminder)

    def _spawn_fire(self, job: ScheduledJob) -> None:
        task = asyncio.create_task(self._fire(job), name=f"reminder-fire-{job.reminder.reminder_id[:12]}")
        self._fire_tasks.add(task)
        task.add_done_callback(self._fire_tasks.discard)

    def fire_due(self) -> list[ScheduledJob]:
        """取出到期任务并逐个在独立 Task 中发送"""
        jobs = self._timers.pop_due(self._clock())
        for job in jobs:
            self._spawn_fire(job)
        return jobs

    async def drain(self) -> None:
        """等待进行中的提醒发送完成"""
        if self._fire_tasks:
            await asyncio.gather(*self._fire_tasks, return_exceptions=True)

    async def _sleep_until_next_deadline(self) -> None:
        timeout = self.MAX_IDLE_SECONDS
        deadline = self._timers.next_deadline()
        if deadline is not None:
            timeout = min(timeout, max(0.0, (deadline - self._clock()).total_seconds()))
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    async def main_loop(self, shutdown_event: asyncio.Event) -> None:
        self._running = True
        logger.info("Reminder 调度器已启动")
        try:
            await self.reconcile()
            while not shutdown_event.is_set():
                self._last_check_at_epoch = time.time()
                # 先清除再检查, 检查之后挂载的计时器会让下一次等待立即返回
                self._wakeup.clear()
                self.fire_due()
                await self._sleep_until_next_deadline()
        finally:
            self._running = False
            if self._fire_tasks:
                logger.info(f"等待 {len(self._fire_tasks)} 个进行中的提醒发送完成...")
                await self.drain()
            logger.info("Reminder 调度器已关闭")


_scheduler: ReminderScheduler | None = None


def configure_reminder_scheduler(scheduler: ReminderScheduler) -> None:
    global _scheduler
    _scheduler = scheduler


def require_reminder_scheduler() -> ReminderScheduler:
    if _scheduler is None:
        raise RuntimeError("ReminderScheduler 尚未配置，请先调用 configure_reminder_scheduler()")
    return _scheduler
