"""Chat completion service - runs one streamed chat turn."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional

from ..errors import (
    ChatError,
    NotFoundError,
    TurnCancelledError,
    UpstreamError,
    ValidationError,
)
from ..models.chat import Chat, Message, Role
from ..models.completion import ChatCompletionInput, ChatCompletionOutput
from ..protocols.chat_store import ChatStoreProtocol
from ..protocols.llm import LLMProtocol
from ..protocols.token_counter import TokenCounterProtocol
from .completion_stream import CompletionStream

logger = logging.getLogger(__name__)


class TurnState(Enum):
    """Turn progress."""
    RESOLVING = "resolving"
    APPENDING_USER = "appending_user"
    STREAMING = "streaming"
    APPENDING_ASSISTANT = "appending_assistant"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class _Turn:
    turn_input: ChatCompletionInput
    stream: Optional[CompletionStream]
    state: TurnState = TurnState.RESOLVING
    chunks: int = 0

    def enter(self, state: TurnState) -> None:
        logger.debug(
            f"[turn] chat={self.turn_input.chat_id} "
            f"{self.state.value} -> {state.value}"
        )
        self.state = state


class ChatCompletionService:
    """Runs chat turns: resolve chat, append user message, stream the
    completion, append the answer, save.

    The store is written once per successful turn (plus ``create_chat`` for
    a new chat). A failed turn leaves the stored chat as it was, even though
    the consumer may already have received part of the answer.

    Turns on the same chat ID must not run concurrently: ``save_chat``
    overwrites the whole message set, so the later save would drop the
    other turn's messages. Callers serialize turns per chat.
    """

    def __init__(
        self,
        llm: LLMProtocol,
        chat_store: ChatStoreProtocol,
        token_counter: TokenCounterProtocol,
        stream_buffer_size: int = 16,
    ):
        """Initialize completion service.

        Args:
            llm: Streaming LLM client.
            chat_store: Chat persistence.
            token_counter: Token counter for new messages.
            stream_buffer_size: Snapshots buffered before publishing blocks.
        """
        self._llm = llm
        self._store = chat_store
        self._counter = token_counter
        self._stream_buffer_size = stream_buffer_size

    async def execute(
        self,
        turn_input: ChatCompletionInput,
        stream: Optional[CompletionStream] = None,
        timeout: Optional[float] = None,
    ) -> ChatCompletionOutput:
        """Run one turn.

        Args:
            turn_input: Turn request.
            stream: Receives cumulative snapshots; closed when the turn ends,
                with the error if it failed.
            timeout: Deadline in seconds for producing the answer. A save
                that has started always runs to completion.

        Returns:
            Final output, equal to the last published snapshot.

        Raises:
            ValidationError: Bad message or config.
            IllegalStateError: Chat is ended, or the stream was already used.
            OverCapacityError: Message exceeds the model context window.
            UpstreamError: Store or LLM failure.
            TurnCancelledError: Deadline exceeded before the save.
        """
        if stream is not None:
            stream.claim()
        turn = _Turn(turn_input=turn_input, stream=stream)

        try:
            async with asyncio.timeout(timeout):
                chat, content = await self._run_turn(turn)
            await self._persist(turn, chat)
        except TimeoutError as e:
            error = TurnCancelledError(
                f"Turn deadline of {timeout}s exceeded while {turn.state.value}"
            )
            self._fail(turn, error)
            raise error from e
        except asyncio.CancelledError:
            self._fail(turn, TurnCancelledError("Turn cancelled"))
            raise
        except Exception as e:
            self._fail(turn, e)
            raise

        turn.enter(TurnState.DONE)
        output = ChatCompletionOutput(
            chat_id=chat.id, user_id=turn_input.user_id, content=content
        )
        if stream is not None:
            stream.close()
        logger.info(
            f"[turn] chat={output.chat_id} done: {turn.chunks} chunks, "
            f"{len(output.content)} chars"
        )
        return output

    async def stream(
        self,
        turn_input: ChatCompletionInput,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[ChatCompletionOutput]:
        """Run one turn in the background and yield its snapshots.

        Each snapshot replaces the previous one. Raises the turn's error
        after the last snapshot if the turn failed. Leaving the loop early
        cancels the turn.
        """
        output = CompletionStream(maxsize=self._stream_buffer_size)
        task = asyncio.create_task(self.execute(turn_input, output, timeout))
        try:
            async for snapshot in output:
                yield snapshot
        finally:
            if not task.done():
                task.cancel()
            # Errors already reached the consumer through the stream.
            await asyncio.gather(task, return_exceptions=True)

    async def _run_turn(self, turn: _Turn) -> tuple[Chat, str]:
        """Resolve the chat and produce the answer, up to the save."""
        turn_input = turn.turn_input

        turn.enter(TurnState.RESOLVING)
        chat = await self._resolve_chat(turn_input)
        if chat.user_id != turn_input.user_id:
            logger.warning(
                f"[turn] chat={chat.id} owned by {chat.user_id}, "
                f"turn sent by {turn_input.user_id}"
            )

        turn.enter(TurnState.APPENDING_USER)
        user_message = Message.create(
            Role.USER, turn_input.user_message, chat.model, self._counter
        )
        chat.add_message(user_message)

        turn.enter(TurnState.STREAMING)
        content = await self._stream_completion(turn, chat)

        turn.enter(TurnState.APPENDING_ASSISTANT)
        assistant_message = Message.create(
            Role.ASSISTANT, content, chat.model, self._counter
        )
        chat.add_message(assistant_message)
        return chat, content

    async def _persist(self, turn: _Turn, chat: Chat) -> None:
        """Save the chat, waiting out any cancellation until the save ends.

        A store may keep writing after its awaitable is cancelled (a worker
        thread, a remote commit), so the outcome is only known once the save
        itself finishes. Cancellations received meanwhile are withdrawn and
        the turn completes with the save's result.
        """
        turn.enter(TurnState.PERSISTING)
        save = asyncio.ensure_future(self._save_chat(chat))
        deferred = 0
        try:
            while True:
                try:
                    await asyncio.shield(save)
                    return
                except asyncio.CancelledError:
                    if save.cancelled():
                        raise
                    deferred += 1
        finally:
            if deferred:
                logger.warning(
                    f"[turn] chat={chat.id} cancellation ignored while persisting"
                )
                task = asyncio.current_task()
                for _ in range(deferred):
                    task.uncancel()

    async def _save_chat(self, chat: Chat) -> None:
        try:
            await self._store.save_chat(chat)
        except ChatError:
            raise
        except Exception as e:
            raise UpstreamError(f"Error saving chat: {e}") from e

    async def _resolve_chat(self, turn_input: ChatCompletionInput) -> Chat:
        """Find the chat or create a new one from the turn config."""
        try:
            return await self._store.find_chat_by_id(turn_input.chat_id)
        except NotFoundError:
            logger.info(f"[turn] chat={turn_input.chat_id} not found, creating")
        except ChatError:
            raise
        except Exception as e:
            raise UpstreamError(f"Error fetching existing chat: {e}") from e

        chat = self._create_chat(turn_input)
        try:
            await self._store.create_chat(chat)
        except ChatError:
            raise
        except Exception as e:
            raise UpstreamError(f"Error persisting new chat: {e}") from e
        return chat

    def _create_chat(self, turn_input: ChatCompletionInput) -> Chat:
        if turn_input.config is None:
            raise ValidationError("Config is required to create a new chat")

        config = turn_input.config.to_chat_config()
        system_message = Message.create(
            Role.SYSTEM,
            turn_input.config.initial_system_message,
            config.model,
            self._counter,
        )
        return Chat.new(
            user_id=turn_input.user_id,
            initial_system_message=system_message,
            config=config,
            chat_id=turn_input.chat_id,
        )

    async def _stream_completion(self, turn: _Turn, chat: Chat) -> str:
        """Relay LLM deltas as cumulative snapshots, return the full text."""
        content = ""
        completion = self._llm.stream_completion(chat.messages, chat.config)
        try:
            async for delta in completion:
                if not delta:
                    continue
                content += delta
                turn.chunks += 1
                if turn.stream is not None:
                    await turn.stream.publish(
                        ChatCompletionOutput(
                            chat_id=chat.id,
                            user_id=turn.turn_input.user_id,
                            content=content,
                        )
                    )
        except ChatError:
            raise
        except Exception as e:
            raise UpstreamError(f"Error streaming response: {e}") from e
        finally:
            aclose = getattr(completion, "aclose", None)
            if aclose is not None:
                await aclose()
        return content

    def _fail(self, turn: _Turn, error: BaseException) -> None:
        logger.error(
            f"[turn] chat={turn.turn_input.chat_id} failed while "
            f"{turn.state.value}: {error}"
        )
        turn.state = TurnState.FAILED
        if turn.stream is not None:
            turn.stream.close(error)
