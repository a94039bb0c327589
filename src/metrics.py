"""
运行时指标，供 Admin API 查询。

LLM 调用与入站消息由调用方直接记录；
出站消息、提醒生命周期与格式错误的指令通过订阅事件总线计数，调度器不感知本模块。
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field

from events import bus, E

# 事件名 -> 快照中的计数字段名
COUNTED_EVENTS = {
    E.IO_MESSAGE_SENT: "msg_out_count",
    E.REMINDER_CREATED: "reminder_created_count",
    E.REMINDER_CANCELLED: "reminder_cancelled_count",
    E.REMINDER_TRIGGERED: "reminder_triggered_count",
    E.REMINDER_SENT: "reminder_sent_count",
    E.REMINDER_DELIVERY_FAILED: "reminder_failed_count",
    E.DIRECTIVE_MALFORMED: "directive_malformed_count",
}


def _utc_stamp(epoch: float | None) -> str | None:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(epoch)) if epoch is not None else None


@dataclass
class RuntimeMetrics:
    llm_call_count: int = 0
    llm_error_count: int = 0
    llm_total_latency_ms: float = 0.0
    last_llm_call_at: float | None = None
    msg_in_count: int = 0
    events: Counter = field(default_factory=Counter)

    def record_llm_call(self, latency_ms: float, error: bool = False) -> None:
        self.llm_call_count += 1
        self.llm_error_count += int(error)
        self.llm_total_latency_ms += max(0.0, latency_ms)
        self.last_llm_call_at = time.time()

    def record_msg_in(self) -> None:
        self.msg_in_count += 1

    def record_event(self, event: str) -> None:
        self.events[event] += 1

    def snapshot(self) -> dict:
        calls = self.llm_call_count
        data = {
            "llm_call_count": calls,
            "llm_error_count": self.llm_error_count,
            "llm_total_latency_ms": round(self.llm_total_latency_ms, 2),
            "llm_avg_latency_ms": round(self.llm_total_latency_ms / calls, 2) if calls else 0.0,
            "last_llm_call_at_utc": _utc_stamp(self.last_llm_call_at),
            "msg_in_count": self.msg_in_count,
        }
        data.update({name: self.events[event] for event, name in COUNTED_EVENTS.items()})
        return data


runtime_metrics = RuntimeMetrics()


def _count(event: str):
    async def listener(*_args) -> None:
        runtime_metrics.record_event(event)

    listener.__name__ = f"count_{event.replace('.', '_')}"
    return listener


for _event in COUNTED_EVENTS:
    bus.on(_event, _count(_event))


__all__ = ["RuntimeMetrics", "runtime_metrics", "COUNTED_EVENTS"]
