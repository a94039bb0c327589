from logger import logger
from config.settings import (
    OPENAI_PRIMARY_API_KEY,
    OPENAI_PRIMARY_BASE_URL,
    LLM_MAIN_MODEL,
)
from llm.base import LLMClient, LLMMessage
from openai import AsyncOpenAI
from typing import Any, Dict, List

class OpenAIClient(LLMClient):
    def __init__(
        self,
        api_key: str = OPENAI_PRIMARY_API_KEY,
        base_url: str = OPENAI_PRIMARY_BASE_URL,
        model: str = LLM_MAIN_MODEL,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url
        )

    @staticmethod
    def _split_instructions(turns: List[LLMMessage]) -> tuple[str, List[Dict[str, Any]]]:
        """system 轮次合并为 instructions，其余作为 input"""
        instructions: List[str] = []
        converted: List[Dict[str, Any]] = []
        for item in turns:
            role = item.get("role")
            if role == "system":
                instructions.append(item.get("content", ""))
            elif role in ("user", "assistant"):
                converted.append({"role": role, "content": item.get("content", "")})
        return "\n\n".join(p for p in instructions if p.strip()), converted

    async def complete(self, turns: List[LLMMessage]) -> str:
        instructions, request_input = self._split_instructions(turns)
        logger.trace(f"LLM请求发起 BaseUrl:{self.base_url}; Model:{self.model}; Turns:{len(request_input)}")
        request_kwargs: Dict[str, Any] = {"model": self.model, "input": request_input}
        if instructions:
            request_kwargs["instructions"] = instructions
        response = await self.client.responses.create(**request_kwargs)
        logger.trace(f"LLM请求收到响应: {response}")
        return response.output_text or ""
