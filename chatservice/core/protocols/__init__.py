"""Protocol interfaces for dependency injection."""
from .chat_store import ChatStoreProtocol
from .llm import LLMProtocol
from .token_counter import TokenCounterProtocol

__all__ = [
    "ChatStoreProtocol",
    "LLMProtocol",
    "TokenCounterProtocol",
]
