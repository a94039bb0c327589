"""Admin API 鉴权: `Authorization: Bearer <token>` 或 `X-Nudge-Token: <token>`"""

from __future__ import annotations

import hmac

from config.settings import ADMIN_AUTH_TOKEN
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from logger import logger

if not ADMIN_AUTH_TOKEN:
    logger.warning("未配置 ADMIN_AUTH_TOKEN，提醒管理接口将返回 503")

_bearer = HTTPBearer(auto_error=False)


def extract_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    x_nudge_token: str | None = Header(default=None),
) -> str | None:
    if credentials is not None and credentials.credentials:
        return credentials.credentials.strip()
    if x_nudge_token and x_nudge_token.strip():
        return x_nudge_token.strip()
    return None


async def require_admin_auth(token: str | None = Depends(extract_token)) -> dict[str, str]:
    if not ADMIN_AUTH_TOKEN:
        raise HTTPException(status_code=503, detail="ADMIN_AUTH_TOKEN 未配置")
    if token is None or not hmac.compare_digest(token, ADMIN_AUTH_TOKEN):
        raise HTTPException(status_code=401, detail="未授权")
    return {"auth": "token", "user": "admin-token"}
