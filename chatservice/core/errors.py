"""Domain errors.

Callers match on the exception type, never on the message text.
"""


class ChatError(Exception):
    """Base class for chat service errors."""


class ValidationError(ChatError):
    """Invalid role, content or config value."""


class NotFoundError(ChatError):
    """Chat lookup miss."""

    def __init__(self, chat_id: str):
        super().__init__(f"Chat not found: {chat_id}")
        self.chat_id = chat_id

    def __reduce__(self):
        return type(self), (self.chat_id,)


class IllegalStateError(ChatError):
    """Mutation not allowed in the current state (e.g. ended chat)."""


class OverCapacityError(ChatError):
    """A single message does not fit into the model context window."""

    def __init__(self, tokens: int, capacity: int):
        super().__init__(
            f"Message needs {tokens} tokens, model capacity is {capacity}"
        )
        self.tokens = tokens
        self.capacity = capacity

    def __reduce__(self):
        return type(self), (self.tokens, self.capacity)


class UpstreamError(ChatError):
    """Store or model client failure."""


class TurnCancelledError(ChatError):
    """Turn aborted by the caller (cancellation or deadline)."""
