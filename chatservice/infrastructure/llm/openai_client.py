
import logging
from typing import AsyncIterator, Sequence

from openai import APIError, AsyncOpenAI

from chatservice.core.errors import UpstreamError
from chatservice.core.models.chat import ChatConfig, Message

logger = logging.getLogger(__name__)


class OpenAICompletionClient:
    """Streaming LLM client for OpenAI-compatible APIs (Ollama by default)."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434/v1",
        api_key: str = "ollama",
    ):
        """Initialize client.

        Args:
            base_url: API URL.
            api_key: API key (Ollama ignores it).
        """
        self._client = AsyncOpenAI(base_url=base_url, api_key=api_key)

    def _build_request(
        self, messages: Sequence[Message], config: ChatConfig
    ) -> dict:
        request = {
            "model": config.model.name,
            "messages": [m.to_dict() for m in messages],
            "temperature": config.temperature,
            "top_p": config.top_p,
            "n": config.n,
            "presence_penalty": config.presence_penalty,
            "frequency_penalty": config.frequency_penalty,
            "stream": True,
        }
        if config.stop:
            request["stop"] = list(config.stop)
        if config.max_tokens > 0:
            request["max_tokens"] = config.max_tokens
        return request

    async def stream_completion(
        self,
        messages: Sequence[Message],
        config: ChatConfig,
    ) -> AsyncIterator[str]:
        """Stream completion text of the first choice.

        Args:
            messages: Context messages.
            config: Generation parameters.

        Yields:
            Response text deltas.
        """
        request = self._build_request(messages, config)
        logger.debug(
            f"[llm] {config.model.name}: {len(request['messages'])} messages"
        )

        try:
            response = await self._client.chat.completions.create(**request)
        except APIError as e:
            raise UpstreamError(f"Error creating chat completion: {e}") from e

        try:
            async for chunk in response:
                for choice in chunk.choices:
                    if choice.index == 0 and choice.delta.content:
                        yield choice.delta.content
        except APIError as e:
            logger.error(f"[llm] Stream error: {e}")
            raise UpstreamError(f"Error streaming response: {e}") from e
        finally:
            await response.close()
