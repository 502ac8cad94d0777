import asyncio
import logging

from chatservice.core.errors import NotFoundError, UpstreamError
from chatservice.core.models.chat import Chat

logger = logging.getLogger(__name__)


def _snapshot(chat: Chat) -> Chat:
    """Detached copy; messages and config are immutable and can be shared."""
    return Chat.restore(
        id=chat.id,
        user_id=chat.user_id,
        config=chat.config,
        status=chat.status,
        messages=list(chat.messages),
        erased_messages=list(chat.erased_messages),
        initial_system_message=chat.initial_system_message,
        created_at=chat.created_at,
        updated_at=chat.updated_at,
    )


class InMemoryChatStore:
    """Process-local chat store."""

    def __init__(self):
        self._chats: dict[str, Chat] = {}
        self._lock = asyncio.Lock()

    async def create_chat(self, chat: Chat) -> None:
        async with self._lock:
            if chat.id in self._chats:
                raise UpstreamError(f"Chat already exists: {chat.id}")
            self._chats[chat.id] = _snapshot(chat)
        logger.debug(f"[store] created chat {chat.id}")

    async def find_chat_by_id(self, chat_id: str) -> Chat:
        async with self._lock:
            stored = self._chats.get(chat_id)
            if stored is None:
                raise NotFoundError(chat_id)
            return _snapshot(stored)

    async def save_chat(self, chat: Chat) -> None:
        async with self._lock:
            self._chats[chat.id] = _snapshot(chat)
        logger.debug(
            f"[store] saved chat {chat.id}: {chat.count_messages()} active, "
            f"{len(chat.erased_messages)} erased"
        )

    def count(self) -> int:
        """Get chat count."""
        return len(self._chats)
