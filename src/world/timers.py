"""进程内计时器集合

以最小堆保存待触发的任务，按 (user_id, reminder_id) 索引，同一键同时最多一个 PENDING 任务。
撤销采用惰性删除：任务从索引中移除，堆中残留的条目在出堆时被跳过。
本模块不感知事件循环和存储，"当前时间" 由调用方传入。
"""

from __future__ import annotations

import heapq
import itertools
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from datamodel import Reminder
from utils import ensure_utc

__all__ = ["JobState", "ScheduledJob", "TimerSet"]

JobKey = tuple[int, str]


class JobState(str, Enum):
    PENDING = "pending"
    FIRING = "firing"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


@dataclass
class ScheduledJob:
    key: JobKey
    due_at: datetime
    reminder: Reminder
    seq: int
    state: JobState = JobState.PENDING


@dataclass(order=True)
class _HeapEntry:
    due_at: datetime
    seq: int
    key: JobKey = field(compare=False)


class TimerSet:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._heap: list[_HeapEntry] = []
        self._jobs: dict[JobKey, ScheduledJob] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._jobs

    def get(self, key: JobKey) -> ScheduledJob | None:
        with self._lock:
            return self._jobs.get(key)

    def keys(self) -> list[JobKey]:
        with self._lock:
            return list(self._jobs)

    def arm(self, reminder: Reminder, due_at: datetime | None = None) -> tuple[ScheduledJob, ScheduledJob | None]:
        """为提醒挂上计时器，返回 (新任务, 被替换的旧任务)"""
        due_at = ensure_utc(due_at or reminder.time_to_notify_utc)
        with self._lock:
            replaced = self._jobs.pop(reminder.key, None)
            if replaced is not None:
                replaced.state = JobState.CANCELLED
            job = ScheduledJob(key=reminder.key, due_at=due_at, reminder=reminder, seq=next(self._seq))
            self._jobs[job.key] = job
            heapq.heappush(self._heap, _HeapEntry(due_at, job.seq, job.key))
            return job, replaced

    def disarm(self, key: JobKey) -> ScheduledJob | None:
        """撤销任务; 返回被撤销的任务, 不存在时返回 None"""
        with self._lock:
            job = self._jobs.pop(key, None)
            if job is not None:
                job.state = JobState.CANCELLED
            return job

    def pop_due(self, now: datetime) -> list[ScheduledJob]:
        """取出所有到期任务并标记为 FIRING"""
        now = ensure_utc(now)
        due: list[ScheduledJob] = []
        with self._lock:
            while self._heap and self._heap[0].due_at <= now:
                entry = heapq.heappop(self._heap)
                job = self._jobs.get(entry.key)
                if job is None or job.seq != entry.seq:
                    continue  # 已撤销或已被替换
                del self._jobs[entry.key]
                job.state = JobState.FIRING
                due.append(job)
        return due

    def next_deadline(self) -> datetime | None:
        with self._lock:
            while self._heap:
                entry = self._heap[0]
                job = self._jobs.get(entry.key)
                if job is not None and job.seq == entry.seq:
                    return entry.due_at
                heapq.heappop(self._heap)
            return None

    def clear(self) -> None:
        with self._lock:
            for job in self._jobs.values():
                job.state = JobState.CANCELLED
            self._jobs.clear()
            self._heap.clear()
