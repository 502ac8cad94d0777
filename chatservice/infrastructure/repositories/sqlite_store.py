import asyncio
import json
import logging
import sqlite3
from contextlib import closing
from datetime import datetime
from pathlib import Path

from chatservice.core.errors import NotFoundError, UpstreamError
from chatservice.core.models.chat import Chat, ChatConfig, Message, Model

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS chats (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    initial_message_id TEXT,
    status TEXT NOT NULL,
    token_usage INTEGER NOT NULL,
    model TEXT NOT NULL,
    model_max_tokens INTEGER NOT NULL,
    temperature REAL NOT NULL,
    top_p REAL NOT NULL,
    n INTEGER NOT NULL,
    stop TEXT NOT NULL,  -- JSON array
    max_tokens INTEGER NOT NULL,
    presence_penalty REAL NOT NULL,
    frequency_penalty REAL NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT NOT NULL,
    chat_id TEXT NOT NULL REFERENCES chats(id),
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    tokens INTEGER NOT NULL,
    model TEXT NOT NULL,
    erased INTEGER NOT NULL DEFAULT 0,
    order_msg INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (chat_id, id)
);

CREATE INDEX IF NOT EXISTS idx_messages_chat_order
ON messages(chat_id, erased, order_msg);
"""


class SqliteChatStore:
    """Chat store on a local SQLite file.

    Blocking sqlite3 calls run in a worker thread.
    """

    def __init__(self, db_path: str = "./data/chats.db"):
        """Initialize SQLite store.

        Args:
            db_path: Database file path (parent dirs are created).
        """
        self._db_path = Path(db_path)
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        if self._initialized:
            return
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
            conn.commit()
        self._initialized = True
        logger.info(f"[store] SQLite schema ready at {self._db_path}")

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as e:
            raise UpstreamError(f"SQLite error: {e}") from e

    async def create_chat(self, chat: Chat) -> None:
        await self._run(self._create_chat, chat)
        logger.info(f"[store] created chat {chat.id}")

    async def find_chat_by_id(self, chat_id: str) -> Chat:
        return await self._run(self._find_chat_by_id, chat_id)

    async def save_chat(self, chat: Chat) -> None:
        await self._run(self._save_chat, chat)
        logger.debug(
            f"[store] saved chat {chat.id}: {chat.count_messages()} active, "
            f"{len(chat.erased_messages)} erased"
        )

    def _chat_params(self, chat: Chat) -> dict:
        config = chat.config
        initial = chat.initial_system_message
        return {
            "id": chat.id,
            "user_id": chat.user_id,
            "initial_message_id": initial.id if initial else None,
            "status": chat.status.value,
            "token_usage": chat.token_usage,
            "model": config.model.name,
            "model_max_tokens": config.model.max_tokens,
            "temperature": config.temperature,
            "top_p": config.top_p,
            "n": config.n,
            "stop": json.dumps(list(config.stop)),
            "max_tokens": config.max_tokens,
            "presence_penalty": config.presence_penalty,
            "frequency_penalty": config.frequency_penalty,
            "created_at": chat.created_at.isoformat(),
            "updated_at": chat.updated_at.isoformat(),
        }

    def _insert_messages(
        self, conn: sqlite3.Connection, chat: Chat
    ) -> None:
        rows = []
        for erased, messages in ((0, chat.messages), (1, chat.erased_messages)):
            for order, message in enumerate(messages):
                rows.append(
                    (
                        message.id,
                        chat.id,
                        message.role.value,
                        message.content,
                        message.tokens,
                        message.model.name,
                        erased,
                        order,
                        message.created_at.isoformat(),
                    )
                )
        conn.executemany(
            """
            INSERT INTO messages (
                id, chat_id, role, content, tokens, model,
                erased, order_msg, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )

    def _create_chat(self, chat: Chat) -> None:
        self._ensure_schema()
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                INSERT INTO chats (
                    id, user_id, initial_message_id, status, token_usage,
                    model, model_max_tokens, temperature, top_p, n, stop,
                    max_tokens, presence_penalty, frequency_penalty,
                    created_at, updated_at
                ) VALUES (
                    :id, :user_id, :initial_message_id, :status, :token_usage,
                    :model, :model_max_tokens, :temperature, :top_p, :n, :stop,
                    :max_tokens, :presence_penalty, :frequency_penalty,
                    :created_at, :updated_at
                )
                """,
                self._chat_params(chat),
            )
            self._insert_messages(conn, chat)

    def _save_chat(self, chat: Chat) -> None:
        self._ensure_schema()
        with closing(self._connect()) as conn, conn:
            cursor = conn.execute(
                """
                UPDATE chats SET
                    user_id = :user_id,
                    initial_message_id = :initial_message_id,
                    status = :status,
                    token_usage = :token_usage,
                    model = :model,
                    model_max_tokens = :model_max_tokens,
                    temperature = :temperature,
                    top_p = :top_p,
                    n = :n,
                    stop = :stop,
                    max_tokens = :max_tokens,
                    presence_penalty = :presence_penalty,
                    frequency_penalty = :frequency_penalty,
                    updated_at = :updated_at
                WHERE id = :id
                """,
                self._chat_params(chat),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(chat.id)
            conn.execute("DELETE FROM messages WHERE chat_id = ?", (chat.id,))
            self._insert_messages(conn, chat)

    def _find_chat_by_id(self, chat_id: str) -> Chat:
        self._ensure_schema()
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT * FROM chats WHERE id = ?", (chat_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError(chat_id)
            message_rows = conn.execute(
                """
                SELECT * FROM messages WHERE chat_id = ?
                ORDER BY erased, order_msg
                """,
                (chat_id,),
            ).fetchall()

        model = Model(name=row["model"], max_tokens=row["model_max_tokens"])
        config = ChatConfig(
            model=model,
            temperature=row["temperature"],
            top_p=row["top_p"],
            n=row["n"],
            stop=tuple(json.loads(row["stop"])),
            max_tokens=row["max_tokens"],
            presence_penalty=row["presence_penalty"],
            frequency_penalty=row["frequency_penalty"],
        )

        messages: list[Message] = []
        erased_messages: list[Message] = []
        for message_row in message_rows:
            message_model = model
            if message_row["model"] != model.name:
                message_model = Model(
                    name=message_row["model"], max_tokens=model.max_tokens
                )
            message = Message(
                id=message_row["id"],
                role=message_row["role"],
                content=message_row["content"],
                tokens=message_row["tokens"],
                model=message_model,
                created_at=datetime.fromisoformat(message_row["created_at"]),
            )
            if message_row["erased"]:
                erased_messages.append(message)
            else:
                messages.append(message)

        initial = next(
            (
                m
                for m in messages + erased_messages
                if m.id == row["initial_message_id"]
            ),
            None,
        )
        return Chat.restore(
            id=row["id"],
            user_id=row["user_id"],
            config=config,
            status=row["status"],
            messages=messages,
            erased_messages=erased_messages,
            initial_system_message=initial,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
