import json
import os
from typing import Any, AsyncIterator, List, Optional

import httpx

from config.models import ModelConfig
from core.contracts.provider import LLMProvider, Message
from utils.errors import ProviderError


def extract_markdown(body: Any) -> Optional[str]:
    """Returns the first choice's message content from a non-streaming response."""
    choices = body.get("choices") if isinstance(body, dict) else None
    if not choices:
        return None
    message = choices[0].get("message") or {}
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "\n".join(parts)
    return None


class ChatCompletionsProvider(LLMProvider):
    """
    Shared client for endpoints speaking the OpenAI chat-completions
    protocol. Subclasses pick the base URL and where the key comes from.
    """

    display_name = "Chat completions"
    api_key_env_var: Optional[str] = None
    default_base_url: Optional[str] = None

    def __init__(self, config: ModelConfig, api_key: Optional[str] = None):
        self.config = config
        self._api_key = api_key or config.api_key
        if not self._api_key and self.api_key_env_var:
            self._api_key = os.getenv(self.api_key_env_var)
        if not self._api_key:
            raise ProviderError(
                f"{self.display_name} API key not found. Please set it in the config "
                f"or as an environment variable {self.api_key_env_var}."
            )

        self._client = httpx.AsyncClient(
            base_url=self.base_url(),
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.config.timeout_sec,
        )

    def base_url(self) -> str:
        base_url = self.config.base_url or self.default_base_url
        if not base_url:
            raise ProviderError(f"{self.display_name} provider requires a `base_url` to be set in the config.")
        return base_url.rstrip("/")

    def _build_payload(self, messages: List[Message], stream: bool) -> dict:
        return {
            "model": self.config.name,
            "messages": messages,
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
            "stream": stream,
            **self.config.parameters,
        }

    def _error_message(self, status_code: int, body: bytes) -> str:
        text = body.decode("utf-8", errors="replace")
        try:
            details = json.loads(text)
            message = details.get("error", {}).get("message", text)
        except (json.JSONDecodeError, AttributeError):
            message = text
        return f"{self.display_name} API error ({status_code}): {message}"

    async def generate(self, messages: List[Message]) -> str:
        """Requests a complete response and returns its Markdown."""
        payload = self._build_payload(messages, stream=False)
        try:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ProviderError(f"Request to {self.display_name} timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                self._error_message(e.response.status_code, e.response.content),
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(f"An unexpected network error occurred: {e}") from e

        markdown = extract_markdown(response.json())
        if not markdown:
            raise ProviderError("Empty model response", status_code=502)
        return markdown

    async def stream(self, messages: List[Message]) -> AsyncIterator[bytes]:
        """Yields raw body chunks of a streaming chat completion."""
        payload = self._build_payload(messages, stream=True)
        try:
            async with self._client.stream("POST", "/chat/completions", json=payload) as response:
                if response.is_error:
                    body = await response.aread()
                    raise ProviderError(
                        self._error_message(response.status_code, body),
                        status_code=response.status_code,
                    )
                async for chunk in response.aiter_bytes():
                    if chunk:
                        yield chunk
        except httpx.TimeoutException as e:
            raise ProviderError(f"Request to {self.display_name} timed out: {e}") from e
        except httpx.RequestError as e:
            raise ProviderError(f"An unexpected network error occurred: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()
