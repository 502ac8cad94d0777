"""Round-trip tests for chat stores."""

from __future__ import annotations

import pytest

from chatservice.core.errors import NotFoundError, UpstreamError
from chatservice.core.models.chat import Chat, ChatConfig, ChatStatus, Model, Role
from chatservice.infrastructure.repositories.memory_store import InMemoryChatStore
from chatservice.infrastructure.repositories.sqlite_store import SqliteChatStore


@pytest.fixture(params=["memory", "sqlite"])
def chat_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryChatStore()
    return SqliteChatStore(str(tmp_path / "db" / "chats.db"))


@pytest.fixture
def evicting_chat(make_message) -> Chat:
    """Chat (capacity 10) that has already evicted two messages."""
    config = ChatConfig(
        model=Model(name="test-model", max_tokens=10),
        temperature=0.3,
        top_p=0.9,
        n=2,
        stop=("###", "END"),
        max_tokens=50,
        presence_penalty=-0.5,
        frequency_penalty=1.5,
    )
    chat = Chat.new(
        "user-1", make_message("sys a b c", Role.SYSTEM), config, chat_id="c-1"
    )
    for text in ("one two three", "four five", "six", "seven eight nine ten eleven"):
        chat.add_message(make_message(text))
    return chat


def _shape(chat: Chat) -> dict:
    return {
        "id": chat.id,
        "user_id": chat.user_id,
        "status": chat.status,
        "token_usage": chat.token_usage,
        "config": chat.config,
        "messages": [
            (m.id, m.role, m.content, m.tokens, m.created_at) for m in chat.messages
        ],
        "erased": [
            (m.id, m.role, m.content, m.tokens, m.created_at)
            for m in chat.erased_messages
        ],
        "initial": chat.initial_system_message.id,
    }


@pytest.mark.asyncio
async def test_round_trip_after_create(chat_store, evicting_chat):
    assert len(evicting_chat.erased_messages) == 2

    await chat_store.create_chat(evicting_chat)
    loaded = await chat_store.find_chat_by_id("c-1")

    assert _shape(loaded) == _shape(evicting_chat)


@pytest.mark.asyncio
async def test_save_overwrites_messages_and_status(chat_store, evicting_chat, make_message):
    await chat_store.create_chat(evicting_chat)

    evicting_chat.add_message(make_message("ten eleven"))
    evicting_chat.end()
    await chat_store.save_chat(evicting_chat)
    loaded = await chat_store.find_chat_by_id("c-1")

    assert _shape(loaded) == _shape(evicting_chat)
    assert loaded.status is ChatStatus.ENDED
    assert loaded.erased_messages[0].role is Role.SYSTEM


@pytest.mark.asyncio
async def test_loaded_chat_is_detached(chat_store, evicting_chat, make_message):
    await chat_store.create_chat(evicting_chat)

    loaded = await chat_store.find_chat_by_id("c-1")
    loaded.add_message(make_message("unsaved"))

    again = await chat_store.find_chat_by_id("c-1")
    assert _shape(again) == _shape(evicting_chat)


@pytest.mark.asyncio
async def test_missing_chat(chat_store):
    with pytest.raises(NotFoundError) as exc_info:
        await chat_store.find_chat_by_id("nope")
    assert exc_info.value.chat_id == "nope"


@pytest.mark.asyncio
async def test_duplicate_create_rejected(chat_store, evicting_chat):
    await chat_store.create_chat(evicting_chat)
    with pytest.raises(UpstreamError):
        await chat_store.create_chat(evicting_chat)


@pytest.mark.asyncio
async def test_sqlite_save_of_unknown_chat(tmp_path, evicting_chat):
    store = SqliteChatStore(str(tmp_path / "chats.db"))
    with pytest.raises(NotFoundError):
        await store.save_chat(evicting_chat)
