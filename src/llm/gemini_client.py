import asyncio
from typing import Any, Dict, List, Tuple

from google import genai
from google.genai import types

from config.settings import GEMINI_API_KEY, GEMINI_BASE_URL, LLM_MAIN_MODEL
from llm.base import LLMClient, LLMMessage
from logger import logger

__all__ = ["GeminiClient"]


class GeminiClient(LLMClient):
    """google-genai 客户端; SDK 为同步调用, 放到线程中执行, 限流/网关错误时退避重试"""

    RETRY_DELAYS_SECONDS = (5.0, 15.0)
    RETRYABLE_SIGNALS = (
        "429", "502", "503", "504",
        "rate limit", "resource_exhausted", "temporarily unavailable",
        "timeout", "timed out", "connection reset", "connection aborted",
    )

    def __init__(self, base_url: str | None = GEMINI_BASE_URL, api_key: str | None = GEMINI_API_KEY, model: str = LLM_MAIN_MODEL) -> None:
        self.model = model
        http_options = types.HttpOptions(base_url=base_url) if base_url else None
        self.client = genai.Client(api_key=api_key, http_options=http_options)

    @classmethod
    def is_retryable(cls, error: Exception) -> bool:
        msg = str(error).lower()
        return any(signal in msg for signal in cls.RETRYABLE_SIGNALS)

    @staticmethod
    def to_gemini_contents(turns: List[LLMMessage]) -> Tuple[List[Dict[str, Any]], str | None]:
        """对话轮次 -> (contents, system_instruction); assistant 在 Gemini 中称为 model"""
        contents: List[Dict[str, Any]] = []
        system_parts: List[str] = []
        for turn in turns:
            role, text = turn.get("role"), turn.get("content", "")
            if role == "system":
                if text.strip():
                    system_parts.append(text)
            elif role in ("user", "assistant"):
                contents.append({"role": "model" if role == "assistant" else "user", "parts": [{"text": text}]})
        return contents, "\n\n".join(system_parts) or None

    async def _generate(self, contents: List[Dict[str, Any]], config: types.GenerateContentConfig) -> Any:
        attempts = len(self.RETRY_DELAYS_SECONDS) + 1
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.to_thread(
                    self.client.models.generate_content,
                    model=self.model,
                    contents=contents,
                    config=config,
                )
            except Exception as e:
                if attempt == attempts or not self.is_retryable(e):
                    raise
                delay = self.RETRY_DELAYS_SECONDS[attempt - 1]
                logger.warning(f"Gemini 请求暂时失败, {delay}s 后重试: attempt={attempt}/{attempts}, error={e}")
                await asyncio.sleep(delay)

    async def complete(self, turns: List[LLMMessage]) -> str:
        contents, system_instruction = self.to_gemini_contents(turns)
        config = types.GenerateContentConfig(system_instruction=system_instruction)

        logger.trace(f"Gemini请求发起 Model:{self.model}; Turns:{len(contents)}")
        response = await self._generate(contents, config)
        logger.trace(f"Gemini请求收到响应: {response}")

        text = getattr(response, "text", None)
        return text if isinstance(text, str) else ""
