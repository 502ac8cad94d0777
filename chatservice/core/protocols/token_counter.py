"""Token counter protocol for dependency injection."""
from typing import Protocol, runtime_checkable


@runtime_checkable
class TokenCounterProtocol(Protocol):
    """Protocol for model-specific token counting."""

    def count(self, model_name: str, text: str) -> int:
        """Count tokens of text for the given model.

        Args:
            model_name: Model identifier.
            text: Text to count.

        Returns:
            Non-negative token count.
        """
        ...
