"""Pytest configuration for chatservice tests.

Fakes stand in for the LLM backend, the tokenizer and storage, so tests
need no network and no model files.
"""

import asyncio
import os
from typing import AsyncIterator, Optional, Sequence

import pytest

os.environ.setdefault("STORE_BACKEND", "memory")

from chatservice.core.models.chat import Chat, ChatConfig, Message, Model, Role
from chatservice.core.models.completion import ChatCompletionConfigInput
from chatservice.core.services.completion_service import ChatCompletionService
from chatservice.infrastructure.repositories.memory_store import InMemoryChatStore


class WordCounter:
    """One token per whitespace-separated word."""

    def count(self, model_name: str, text: str) -> int:
        return len(text.split())


class ScriptedLLM:
    """Streams fixed chunks; optionally fails after ``fail_after`` chunks."""

    def __init__(
        self,
        chunks: Sequence[str] = ("Hel", "lo", " world"),
        fail_after: Optional[int] = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.error = error or ConnectionError("connection reset")
        self.delay = delay
        self.calls: list[tuple[list[Message], ChatConfig]] = []
        self.consumed = 0
        self.closed = False

    async def stream_completion(
        self, messages: Sequence[Message], config: ChatConfig
    ) -> AsyncIterator[str]:
        self.calls.append((list(messages), config))
        try:
            for i, chunk in enumerate(self.chunks):
                if self.fail_after is not None and i == self.fail_after:
                    raise self.error
                if self.delay:
                    await asyncio.sleep(self.delay)
                self.consumed += 1
                yield chunk
        finally:
            self.closed = True


class RecordingStore(InMemoryChatStore):
    """In-memory store that counts calls and can be told to fail."""

    def __init__(self):
        super().__init__()
        self.saves = 0
        self.creates = 0
        self.fail_find: Exception | None = None
        self.fail_save: Exception | None = None

    async def create_chat(self, chat: Chat) -> None:
        self.creates += 1
        await super().create_chat(chat)

    async def find_chat_by_id(self, chat_id: str) -> Chat:
        if self.fail_find is not None:
            raise self.fail_find
        return await super().find_chat_by_id(chat_id)

    async def save_chat(self, chat: Chat) -> None:
        if self.fail_save is not None:
            raise self.fail_save
        self.saves += 1
        await super().save_chat(chat)


@pytest.fixture
def counter() -> WordCounter:
    return WordCounter()


@pytest.fixture
def model() -> Model:
    return Model(name="test-model", max_tokens=10)


@pytest.fixture
def config(model: Model) -> ChatConfig:
    return ChatConfig(model=model, temperature=0.5, stop=("###",))


@pytest.fixture
def make_message(model: Model, counter: WordCounter):
    def _make(content: str, role: Role | str = Role.USER) -> Message:
        return Message.create(role, content, model, counter)

    return _make


@pytest.fixture
def config_input() -> ChatCompletionConfigInput:
    return ChatCompletionConfigInput(
        model="test-model",
        model_max_tokens=100,
        initial_system_message="You are helpful",
        temperature=0.2,
        stop=["###"],
    )


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def service(llm, store, counter) -> ChatCompletionService:
    return ChatCompletionService(
        llm=llm, chat_store=store, token_counter=counter, stream_buffer_size=4
    )
