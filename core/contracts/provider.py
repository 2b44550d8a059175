from typing import AsyncIterator, Dict, List, Protocol

Message = Dict[str, str]


class LLMProvider(Protocol):
    """A protocol for chat-completion providers."""

    async def generate(self, messages: List[Message]) -> str:
        """
        Requests a complete, non-streaming response.

        Args:
            messages: The chat messages (system + user) to send.

        Returns:
            The Markdown text produced by the model.
        """
        ...

    def stream(self, messages: List[Message]) -> AsyncIterator[bytes]:
        """
        Opens a streaming request and yields the raw response body chunks
        in arrival order. Chunks are not aligned to lines or characters.
        """
        ...
