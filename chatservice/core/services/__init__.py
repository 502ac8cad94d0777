"""Core business services."""
from .completion_service import ChatCompletionService, TurnState
from .completion_stream import CompletionStream

__all__ = [
    "ChatCompletionService",
    "CompletionStream",
    "TurnState",
]
