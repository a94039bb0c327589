"""LLM 辅助调用

把一次性的小任务 (例如 "地点 -> 时区") 包装成命名操作：
每个操作由 system prompt、user prompt 模板和回复解析函数组成。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config.prompts import LOCATION_TO_TIMEZONE_SYSTEM_PROMPT, LOCATION_TO_TIMEZONE_USER_PROMPT
from llm.base import LLMClient
from logger import logger

__all__ = ["MiddlewareConfig", "TimezoneGuess", "LLMMiddleware", "parse_timezone_response"]

LOCATION_TO_TIMEZONE = "location_to_timezone"


@dataclass
class MiddlewareConfig:
    system_prompt: str
    user_prompt_template: Callable[[Any], str]
    parse_response: Callable[[str], Any]


@dataclass
class TimezoneGuess:
    timezone: str
    explanation: str


def parse_timezone_response(response: str) -> TimezoneGuess:
    """解析 `<timezone>|<explanation>` 格式的回复"""
    timezone, _, explanation = response.strip().partition("|")
    timezone = timezone.strip().strip("\"'`")
    if not timezone:
        raise ValueError(f"回复中没有时区: {response!r}")
    return TimezoneGuess(timezone=timezone, explanation=explanation.strip())


class LLMMiddleware:
    def __init__(self, client: LLMClient) -> None:
        self.client = client
        self._configs: Dict[str, MiddlewareConfig] = {}
        self.add_middleware(
            LOCATION_TO_TIMEZONE,
            MiddlewareConfig(
                system_prompt=LOCATION_TO_TIMEZONE_SYSTEM_PROMPT,
                user_prompt_template=lambda location: LOCATION_TO_TIMEZONE_USER_PROMPT.format(location=location),
                parse_response=parse_timezone_response,
            ),
        )

    def add_middleware(self, operation: str, config: MiddlewareConfig) -> None:
        self._configs[operation] = config

    async def process_user_input(self, user_input: Any, operation: str) -> Any:
        config = self._configs.get(operation)
        if config is None:
            raise ValueError(f"不支持的操作: {operation}")

        response = await self.client.complete([
            {"role": "system", "content": config.system_prompt},
            {"role": "user", "content": config.user_prompt_template(user_input)},
        ])
        result = config.parse_response(response)
        logger.info(f"LLM 辅助调用完成: operation={operation}, input={user_input!r}, result={result}")
        return result

    async def location_to_timezone(self, location: str) -> TimezoneGuess:
        return await self.process_user_input(location, LOCATION_TO_TIMEZONE)

    @staticmethod
    def validate_timezone(timezone: str) -> bool:
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return False
        return True
