"""Domain models."""
from .chat import Chat, ChatConfig, ChatStatus, Message, Model, Role
from .completion import (
    ChatCompletionConfigInput,
    ChatCompletionInput,
    ChatCompletionOutput,
)

__all__ = [
    "Chat",
    "ChatConfig",
    "ChatStatus",
    "Message",
    "Model",
    "Role",
    "ChatCompletionConfigInput",
    "ChatCompletionInput",
    "ChatCompletionOutput",
]
