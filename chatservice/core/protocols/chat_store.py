"""Chat store protocol for dependency injection."""
from typing import Protocol, runtime_checkable

from ..models.chat import Chat


@runtime_checkable
class ChatStoreProtocol(Protocol):
    """Protocol for chat persistence."""

    async def create_chat(self, chat: Chat) -> None:
        """Persist a brand-new chat with its initial message.

        Args:
            chat: New chat.

        Raises:
            UpstreamError: Storage failure.
        """
        ...

    async def find_chat_by_id(self, chat_id: str) -> Chat:
        """Load a chat.

        Args:
            chat_id: Chat ID.

        Returns:
            Stored chat.

        Raises:
            NotFoundError: No chat with this ID.
            UpstreamError: Storage failure.
        """
        ...

    async def save_chat(self, chat: Chat) -> None:
        """Overwrite the stored chat: config, status, token usage,
        active messages and erased messages.

        Args:
            chat: Chat to save.

        Raises:
            UpstreamError: Storage failure.
        """
        ...
