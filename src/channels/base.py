from abc import ABC, abstractmethod

__all__ = ["ChatGateway"]


class ChatGateway(ABC):
    @abstractmethod
    async def send_message(self, chat_id: int, text: str) -> None:
        """发送消息; 失败时抛出异常，由调用方决定如何处理"""
        pass

    def stop_typing(self, chat_id: int) -> None:
        """结束 "正在输入" 提示; 不支持的通道无需实现"""
        pass
