import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from .config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Container:
    _factories: dict[type, Callable[[], Any]] = field(default_factory=dict)
    _singletons: dict[type, Any] = field(default_factory=dict)
    _singleton_flags: set[type] = field(default_factory=set)

    def register(
        self, interface: type[T], factory: Callable[[], T], singleton: bool = False
    ) -> None:
        """Register factory for interface.

        Args:
            interface: Interface type.
            factory: Factory function.
            singleton: Whether to cache instance.
        """
        self._factories[interface] = factory
        if singleton:
            self._singleton_flags.add(interface)

    def resolve(self, interface: type[T]) -> T:
        if interface in self._singletons:
            return self._singletons[interface]

        if interface not in self._factories:
            raise KeyError(f"No factory registered for {interface}")

        instance = self._factories[interface]()

        if interface in self._singleton_flags:
            self._singletons[interface] = instance

        return instance

    def reset(self) -> None:
        """Reset singletons (for testing)."""
        self._singletons.clear()


container = Container()


def _build_chat_store(settings: Settings):
    from .infrastructure.repositories.memory_store import InMemoryChatStore
    from .infrastructure.repositories.sqlite_store import SqliteChatStore

    if settings.store_backend == "memory":
        return InMemoryChatStore()
    if settings.store_backend == "sqlite":
        return SqliteChatStore(settings.sqlite_path)
    raise ValueError(f"Unknown store backend: {settings.store_backend}")


def configure_container(settings: Settings) -> Container:
    """Configure container with all dependencies.

    Args:
        settings: Application settings.

    Returns:
        Configured container.
    """
    from .core.protocols.chat_store import ChatStoreProtocol
    from .core.protocols.llm import LLMProtocol
    from .core.protocols.token_counter import TokenCounterProtocol
    from .core.services.completion_service import ChatCompletionService
    from .infrastructure.llm.openai_client import OpenAICompletionClient
    from .infrastructure.tokenizers.tiktoken_counter import TiktokenCounter

    container.register(
        TokenCounterProtocol,
        lambda: TiktokenCounter(settings.tokenizer_fallback_encoding),
        singleton=True,
    )

    container.register(
        LLMProtocol,
        lambda: OpenAICompletionClient(
            base_url=settings.llm_base_url,
            api_key=settings.llm_api_key,
        ),
        singleton=True,
    )

    container.register(
        ChatStoreProtocol,
        lambda: _build_chat_store(settings),
        singleton=True,
    )

    container.register(
        ChatCompletionService,
        lambda: ChatCompletionService(
            llm=container.resolve(LLMProtocol),
            chat_store=container.resolve(ChatStoreProtocol),
            token_counter=container.resolve(TokenCounterProtocol),
            stream_buffer_size=settings.stream_buffer_size,
        ),
        singleton=True,
    )

    logger.info(f"Container configured ({settings.store_backend} store)")
    return container
