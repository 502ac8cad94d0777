"""LLM protocol for dependency injection."""
from typing import AsyncIterator, Protocol, Sequence, runtime_checkable

from ..models.chat import ChatConfig, Message


@runtime_checkable
class LLMProtocol(Protocol):
    """Protocol for streaming LLM client."""

    def stream_completion(
        self,
        messages: Sequence[Message],
        config: ChatConfig,
    ) -> AsyncIterator[str]:
        """Stream a chat completion.

        The returned iterator is finite and cannot be restarted.

        Args:
            messages: Active chat messages, oldest first.
            config: Generation parameters.

        Yields:
            Response text deltas.

        Raises:
            UpstreamError: Transport or API failure.
        """
        ...
