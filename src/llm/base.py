from abc import ABC, abstractmethod
from typing import List, Literal, TypedDict

__all__ = ["LLMClient", "LLMMessage"]

class LLMMessage(TypedDict):
    role: Literal["system", "user", "assistant"]
    content: str


class LLMClient(ABC):
    model: str

    @abstractmethod
    async def complete(self, turns: List[LLMMessage]) -> str:
        """按顺序发送对话轮次，返回模型的文本回复 (可能为空字符串)"""
        pass
