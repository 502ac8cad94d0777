import argparse
import asyncio
import logging
import subprocess
import sys
import time
import uuid

import httpx

from chatservice.config.settings import settings
from chatservice.container import configure_container, container
from chatservice.core.errors import ChatError
from chatservice.core.models.completion import ChatCompletionInput
from chatservice.core.services.completion_service import ChatCompletionService

logger = logging.getLogger(__name__)


def ensure_ollama_model() -> bool:
    """Ensure Ollama model is available.

    Returns:
        True if model ready, False otherwise.
    """
    model = settings.llm_model
    base_url = settings.llm_base_url.replace("/v1", "")

    logger.info(f"Checking Ollama model: {model}")

    for attempt in range(30):
        try:
            resp = httpx.get(f"{base_url}/api/tags", timeout=5)
            if resp.status_code == 200:
                models = [m["name"] for m in resp.json().get("models", [])]
                if any(model in m for m in models):
                    logger.info(f"Model {model} is ready")
                    return True

                logger.info(f"Pulling model {model}...")
                pull_resp = httpx.post(
                    f"{base_url}/api/pull",
                    json={"name": model},
                    timeout=600,  # Model pull can take a while
                )
                if pull_resp.status_code == 200:
                    logger.info(f"Model {model} pulled successfully")
                    return True
                logger.error(f"Failed to pull model: {pull_resp.text}")
        except httpx.HTTPError:
            logger.info(f"Waiting for Ollama... ({attempt + 1}/30)")
            time.sleep(2)

    logger.error("Ollama not available")
    return False


async def run_turn(
    service: ChatCompletionService, chat_id: str, user_id: str, message: str
) -> str:
    """Run one turn, printing the answer as it grows."""
    turn_input = ChatCompletionInput(
        chat_id=chat_id,
        user_id=user_id,
        user_message=message,
        config=settings.completion_config(),
    )
    printed = 0
    content = ""
    async for snapshot in service.stream(turn_input, timeout=settings.turn_timeout):
        # Snapshots are cumulative; print only the new tail.
        content = snapshot.content
        sys.stdout.write(content[printed:])
        sys.stdout.flush()
        printed = len(content)
    sys.stdout.write("\n")
    return content


def cmd_check():
    """Check command - wait for the LLM backend and model."""
    if not ensure_ollama_model():
        sys.exit(1)


def cmd_chat(args: argparse.Namespace):
    """Chat command - one turn."""
    configure_container(settings)
    service = container.resolve(ChatCompletionService)
    try:
        asyncio.run(run_turn(service, args.chat_id, args.user_id, args.message))
    except ChatError as e:
        logger.error(f"Turn failed: {e}")
        sys.exit(1)
    print(f"chat_id: {args.chat_id}", file=sys.stderr)


def cmd_repl(args: argparse.Namespace):
    """REPL command - turns on one chat until /quit."""
    configure_container(settings)
    service = container.resolve(ChatCompletionService)

    async def loop():
        while True:
            try:
                message = await asyncio.to_thread(input, "\nYou: ")
            except EOFError:
                return
            message = message.strip()
            if not message:
                continue
            if message in ("/quit", "/exit"):
                return
            try:
                await run_turn(service, args.chat_id, args.user_id, message)
            except ChatError as e:
                print(f"\nError: {e}", file=sys.stderr)

    print(f"chat_id: {args.chat_id}")
    asyncio.run(loop())


def cmd_startup():
    """Startup command - check backend, run Chainlit."""
    logger.info("Starting chat service...")

    if not ensure_ollama_model():
        sys.exit(1)

    logger.info("Starting Chainlit...")
    subprocess.run(
        [
            sys.executable,
            "-m",
            "chainlit",
            "run",
            "chatservice/presentation/chainlit_app.py",
            "--host",
            "0.0.0.0",
            "--port",
            "8000",
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chatservice")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("check", help="wait for the LLM backend and model")
    commands.add_parser("startup", help="check backend and run Chainlit")

    chat = commands.add_parser("chat", help="run one turn")
    chat.add_argument("message")
    chat.add_argument("--chat-id", default=str(uuid.uuid4()))
    chat.add_argument("--user-id", default="cli")

    repl = commands.add_parser("repl", help="interactive chat")
    repl.add_argument("--chat-id", default=str(uuid.uuid4()))
    repl.add_argument("--user-id", default="cli")

    return parser


def main(argv: list[str] | None = None):
    """CLI entry point."""
    logging.basicConfig(level=settings.log_level, format="%(message)s")
    args = build_parser().parse_args(argv)

    if args.command == "check":
        cmd_check()
    elif args.command == "chat":
        cmd_chat(args)
    elif args.command == "repl":
        cmd_repl(args)
    elif args.command == "startup":
        cmd_startup()


if __name__ == "__main__":
    main()
