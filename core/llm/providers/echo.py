import asyncio
import json
from typing import AsyncIterator, List, Optional

from config.models import ModelConfig
from core.contracts.provider import LLMProvider, Message
from core.registry import provider_registry


@provider_registry.register("echo")
class EchoProvider(LLMProvider):
    """An offline provider that streams the user message back, word by word."""

    def __init__(self, config: ModelConfig, api_key: Optional[str] = None, delay: float = 0.02):
        self.config = config
        self._delay = delay

    @staticmethod
    def _user_content(messages: List[Message]) -> str:
        for message in reversed(messages):
            if message.get("role") == "user":
                return message.get("content", "")
        return ""

    async def generate(self, messages: List[Message]) -> str:
        return self._user_content(messages)

    async def stream(self, messages: List[Message]) -> AsyncIterator[bytes]:
        content = self._user_content(messages)
        for word in content.split(" "):
            chunk = {"choices": [{"delta": {"content": word + " "}}]}
            yield f"data: {json.dumps(chunk)}\n\n".encode("utf-8")
            await asyncio.sleep(self._delay)
        yield b"data: [DONE]\n\n"
