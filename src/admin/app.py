from __future__ import annotations

import asyncio
import time
from typing import Any

from config.settings import ENABLE_TELEGRAM_BOT_POLLING
from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from logger import logger
from metrics import runtime_metrics
from utils import format_utc

import storage.db_config as db_config
import storage.reminder as reminder_storage
from world.reminder import require_reminder_scheduler
from core.orchestrator import require_session_manager
from .auth import require_admin_auth
from .schemas import ReminderOut, RuntimeControl, ShutdownRequest


def create_app(control: RuntimeControl) -> FastAPI:
    app = FastAPI(title="Nudge Admin API", version="1.0.0")

    def health_payload() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "db_connected": db_config.conn is not None,
            "shutdown_requested": control.shutdown_event.is_set(),
        }

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/api/v1/health")
    async def api_health() -> dict[str, Any]:
        return health_payload()

    @app.get("/api/v1/metrics", dependencies=[Depends(require_admin_auth)])
    async def get_metrics() -> dict[str, Any]:
        telegram_status = {"enabled": ENABLE_TELEGRAM_BOT_POLLING, "connected": False, "active_typing": 0}
        if ENABLE_TELEGRAM_BOT_POLLING:
            try:
                from channels.telegram_polling import get_status as get_telegram_status

                telegram_status.update(get_telegram_status())
            except Exception as e:
                logger.warning(f"读取 Telegram 状态失败: {e}")

        reminder_status: dict[str, Any] = {"running": False}
        try:
            reminder_status.update(require_reminder_scheduler().get_status())
        except RuntimeError:
            pass

        session_status: dict[str, Any] = {"sessions": 0}
        try:
            session_status.update(require_session_manager().get_status())
        except RuntimeError:
            pass

        return {
            "runtime": runtime_metrics.snapshot(),
            "components": {
                "db": {"connected": db_config.conn is not None},
                "telegram": telegram_status,
                "reminder": reminder_status,
                "sessions": session_status,
            },
            "active_tasks": len(asyncio.all_tasks()),
        }

    @app.get("/api/v1/reminders", dependencies=[Depends(require_admin_auth)])
    async def get_reminders(user_id: int | None = None) -> dict[str, Any]:
        if db_config.conn is None:
            raise HTTPException(status_code=503, detail="数据库尚未就绪")

        if user_id is None:
            reminders = await reminder_storage.list_reminders()
        else:
            reminders = await reminder_storage.list_reminders_by_user_id(user_id)

        try:
            timers = require_reminder_scheduler().timers
        except RuntimeError:
            timers = None

        items = [
            ReminderOut(
                user_id=r.user_id,
                chat_id=r.chat_id,
                reminder_id=r.reminder_id,
                reminder_text=r.reminder_text,
                notification_text=r.notification_text,
                time_to_notify_utc=format_utc(r.time_to_notify_utc),
                created_at_utc=r.created_at_utc,
                armed=timers is not None and r.key in timers,
            ).model_dump()
            for r in reminders
        ]
        return {"items": items, "total": len(items), "user_id": user_id}

    @app.delete("/api/v1/reminders/{user_id}/{reminder_id}")
    async def delete_reminder(user_id: int, reminder_id: str, auth_info: dict = Depends(require_admin_auth)) -> dict[str, Any]:
        try:
            scheduler = require_reminder_scheduler()
        except RuntimeError:
            raise HTTPException(status_code=503, detail="提醒调度器尚未就绪")

        logger.info(f"收到远程撤销提醒请求: by={auth_info['user']}, user_id={user_id}, reminder_id={reminder_id}")
        if not await scheduler.cancel_reminder_by_reminder_id(user_id, reminder_id):
            raise HTTPException(status_code=404, detail="提醒不存在")
        return {"ok": True, "user_id": user_id, "reminder_id": reminder_id}

    @app.post("/api/v1/admin/shutdown")
    async def admin_shutdown(payload: ShutdownRequest, auth_info: dict = Depends(require_admin_auth)) -> dict[str, Any]:
        logger.warning(f"收到远程关闭请求: by={auth_info['user']}, reason={payload.reason}")
        control.shutdown_event.set()
        return {"ok": True, "action": "shutdown", "reason": payload.reason}

    return app
