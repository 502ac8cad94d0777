import logging
import uuid

import chainlit as cl

from chatservice.config.settings import settings
from chatservice.container import configure_container, container
from chatservice.core.errors import ChatError
from chatservice.core.models.completion import ChatCompletionInput
from chatservice.core.services.completion_service import ChatCompletionService

logging.basicConfig(level=settings.log_level, format="%(message)s")
logger = logging.getLogger(__name__)

configure_container(settings)


@cl.on_chat_start
async def start():
    cl.user_session.set("chat_id", str(uuid.uuid4()))

    await cl.Message(content="Hi! Ask me anything.").send()


@cl.on_message
async def main(message: cl.Message):
    service = container.resolve(ChatCompletionService)
    chat_id: str = cl.user_session.get("chat_id")
    user = cl.user_session.get("user")
    user_id = user.identifier if user else cl.user_session.get("id")

    turn_input = ChatCompletionInput(
        chat_id=chat_id,
        user_id=user_id,
        user_message=message.content.strip(),
        config=settings.completion_config(),
    )

    msg = cl.Message(content="")
    await msg.send()

    try:
        async for snapshot in service.stream(
            turn_input, timeout=settings.turn_timeout
        ):
            # Cumulative content replaces the message text.
            await msg.stream_token(snapshot.content, is_sequence=True)
    except ChatError as e:
        logger.error(f"[chainlit] Turn failed for chat {chat_id}: {e}")
        await msg.stream_token(f"\n\nError while generating the answer: {e}")

    await msg.update()


@cl.on_stop
async def stop():
    await cl.Message(content="Generation stopped").send()
