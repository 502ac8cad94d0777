"""Chat domain models."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from ..errors import IllegalStateError, OverCapacityError, ValidationError

if TYPE_CHECKING:
    from ..protocols.token_counter import TokenCounterProtocol


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Message author."""
    USER = "user"
    SYSTEM = "system"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value: "Role | str") -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Invalid role: {value!r}") from None


class ChatStatus(str, Enum):
    """Chat lifecycle. The only transition is ACTIVE -> ENDED."""
    ACTIVE = "active"
    ENDED = "ended"


@dataclass(frozen=True)
class Model:
    """Target model and its context window size."""
    name: str
    max_tokens: int

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("Model name is empty")
        if self.max_tokens <= 0:
            raise ValidationError(
                f"Model max_tokens must be positive, got {self.max_tokens}"
            )


@dataclass(frozen=True)
class Message:
    """Immutable conversation message.

    Token count is computed once by ``Message.create`` and never recounted.
    """
    id: str
    role: Role
    content: str
    tokens: int
    model: Model
    created_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", Role.parse(self.role))
        if not self.content:
            raise ValidationError("Content is empty")
        if self.tokens < 0:
            raise ValidationError(f"Token count is negative: {self.tokens}")
        if self.created_at is None:
            raise ValidationError("Invalid created_at")

    @classmethod
    def create(
        cls,
        role: Role | str,
        content: str,
        model: Model,
        counter: "TokenCounterProtocol",
    ) -> "Message":
        """Build a new message, counting its tokens for ``model``.

        Raises:
            ValidationError: Bad role, empty content or bad token count.
        """
        role = Role.parse(role)
        if not content:
            raise ValidationError("Content is empty")
        return cls(
            id=str(uuid.uuid4()),
            role=role,
            content=content,
            tokens=counter.count(model.name, content),
            model=model,
            created_at=_utcnow(),
        )

    def to_dict(self) -> dict:
        """Convert to dict for LLM."""
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ChatConfig:
    """Generation parameters of a chat."""
    model: Model
    temperature: float = 1.0
    top_p: float = 1.0
    n: int = 1
    stop: tuple[str, ...] = ()
    max_tokens: int = 0  # 0 lets the model decide
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "stop", tuple(self.stop or ()))

    def validate(self) -> None:
        """Check parameter ranges.

        Raises:
            ValidationError: First out-of-range field.
        """
        if not 0 <= self.temperature <= 2:
            raise ValidationError(f"Invalid temperature: {self.temperature}")
        if not 0 <= self.top_p <= 1:
            raise ValidationError(f"Invalid top_p: {self.top_p}")
        if self.n < 1:
            raise ValidationError(f"Invalid n: {self.n}")
        if self.max_tokens < 0:
            raise ValidationError(f"Invalid max_tokens: {self.max_tokens}")
        if not -2 <= self.presence_penalty <= 2:
            raise ValidationError(
                f"Invalid presence_penalty: {self.presence_penalty}"
            )
        if not -2 <= self.frequency_penalty <= 2:
            raise ValidationError(
                f"Invalid frequency_penalty: {self.frequency_penalty}"
            )
        if any(not s for s in self.stop):
            raise ValidationError("Stop sequences must be non-empty strings")


@dataclass
class Chat:
    """Conversation with a token-bounded context window.

    Active messages are kept oldest first. When a new message does not fit,
    the oldest active messages are moved to ``erased_messages`` until it does.
    """
    user_id: str
    config: ChatConfig
    initial_system_message: Optional[Message] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: ChatStatus = ChatStatus.ACTIVE
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    _messages: list[Message] = field(default_factory=list, repr=False)
    _erased_messages: list[Message] = field(default_factory=list, repr=False)
    _token_usage: int = field(default=0, repr=False)

    @classmethod
    def new(
        cls,
        user_id: str,
        initial_system_message: Message,
        config: ChatConfig,
        chat_id: Optional[str] = None,
    ) -> "Chat":
        """Create an active chat seeded with the system message.

        Args:
            user_id: Owner.
            initial_system_message: First message of the context.
            config: Generation parameters.
            chat_id: Chat ID to use; a new UUID when empty.

        Raises:
            ValidationError: Empty user id or invalid config.
            OverCapacityError: System message alone exceeds the model window.
        """
        if not user_id:
            raise ValidationError("User id is empty")
        config.validate()
        chat = cls(
            user_id=user_id,
            config=config,
            initial_system_message=initial_system_message,
        )
        if chat_id:
            chat.id = chat_id
        chat.add_message(initial_system_message)
        return chat

    @classmethod
    def restore(
        cls,
        id: str,
        user_id: str,
        config: ChatConfig,
        status: ChatStatus | str,
        messages: list[Message],
        erased_messages: list[Message],
        initial_system_message: Optional[Message] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> "Chat":
        """Rebuild a stored chat as-is (no eviction, no recounting)."""
        chat = cls(
            id=id,
            user_id=user_id,
            config=config,
            initial_system_message=initial_system_message,
            status=ChatStatus(status),
            created_at=created_at or _utcnow(),
            updated_at=updated_at or _utcnow(),
        )
        chat._messages = list(messages)
        chat._erased_messages = list(erased_messages)
        chat._refresh_token_usage()
        return chat

    @property
    def model(self) -> Model:
        return self.config.model

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def erased_messages(self) -> tuple[Message, ...]:
        return tuple(self._erased_messages)

    @property
    def token_usage(self) -> int:
        return self._token_usage

    @property
    def is_ended(self) -> bool:
        return self.status is ChatStatus.ENDED

    def count_messages(self) -> int:
        return len(self._messages)

    def add_message(self, message: Message) -> None:
        """Append a message, evicting the oldest ones to stay in budget.

        Raises:
            IllegalStateError: Chat is ended.
            OverCapacityError: Message alone exceeds the model window.
        """
        if self.is_ended:
            raise IllegalStateError("Chat is ended, no more messages allowed")

        capacity = self.config.model.max_tokens
        if message.tokens > capacity:
            raise OverCapacityError(message.tokens, capacity)

        while message.tokens + self._token_usage > capacity:
            self._erased_messages.append(self._messages.pop(0))
            self._refresh_token_usage()

        self._messages.append(message)
        self._refresh_token_usage()
        self.updated_at = _utcnow()

    def end(self) -> None:
        self.status = ChatStatus.ENDED
        self.updated_at = _utcnow()

    def _refresh_token_usage(self) -> None:
        self._token_usage = sum(m.tokens for m in self._messages)
