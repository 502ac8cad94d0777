"""Chat completion turn input/output models."""
from dataclasses import dataclass, field
from typing import Optional

from .chat import ChatConfig, Model


@dataclass
class ChatCompletionConfigInput:
    """Parameters for creating a new chat."""
    model: str
    model_max_tokens: int
    initial_system_message: str
    temperature: float = 1.0
    top_p: float = 1.0
    n: int = 1
    stop: list[str] = field(default_factory=list)
    max_tokens: int = 0
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0

    def to_chat_config(self) -> ChatConfig:
        return ChatConfig(
            model=Model(name=self.model, max_tokens=self.model_max_tokens),
            temperature=self.temperature,
            top_p=self.top_p,
            n=self.n,
            stop=tuple(self.stop),
            max_tokens=self.max_tokens,
            presence_penalty=self.presence_penalty,
            frequency_penalty=self.frequency_penalty,
        )


@dataclass
class ChatCompletionInput:
    """One turn request.

    ``config`` is only used when ``chat_id`` does not resolve to a stored chat.
    """
    chat_id: str
    user_id: str
    user_message: str
    config: Optional[ChatCompletionConfigInput] = None


@dataclass(frozen=True)
class ChatCompletionOutput:
    """Cumulative completion snapshot.

    ``content`` is the whole text produced so far, not a delta.
    """
    chat_id: str
    user_id: str
    content: str
