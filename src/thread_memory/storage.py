"""
Storage collaborator.

``MessageStore`` is the contract this package consumes. ``StorageGateway``
wraps any implementation so that every failure reaches the caller as a
``StorageError``. Two implementations ship with the package:

- ``InMemoryMessageStore`` for tests and local runs
- ``PostgresMessageStore`` backed by psycopg (async)
"""

import logging
from collections import defaultdict
from typing import Optional, Protocol, Sequence

from .errors import StorageError, ThreadMemoryError, require_thread_id
from .models import Message, MessageMetadata, ThreadSummary

logger = logging.getLogger(__name__)


class MessageStore(Protocol):
    async def load_messages(self, thread_id: str) -> Sequence[Message]:
        """Messages of a thread, ascending by timestamp."""
        ...

    async def save_thread_summary(self, summary: ThreadSummary) -> bool:
        """Upsert the summary keyed by its thread id."""
        ...

    async def load_thread_summary(self, thread_id: str) -> Optional[ThreadSummary]:
        ...

    async def save_message_metadata(self, message_id: str, metadata: MessageMetadata) -> bool:
        ...

    async def query_messages_by_tag(self, thread_id: str, tag: str) -> Sequence[Message]:
        ...


class StorageGateway:
    """
    Typed-failure boundary around a MessageStore.

    Exceptions raised by the store, and ``False`` results from saves, are
    turned into StorageError. No retries happen here.
    """

    def __init__(self, store: MessageStore):
        self.store = store

    async def load_messages(self, thread_id: str) -> list[Message]:
        require_thread_id(thread_id)
        try:
            messages = await self.store.load_messages(thread_id)
        except ThreadMemoryError:
            raise
        except Exception as e:
            raise StorageError("load_messages", str(e), thread_id) from e
        return list(messages or [])

    async def load_thread_summary(self, thread_id: str) -> Optional[ThreadSummary]:
        require_thread_id(thread_id)
        try:
            return await self.store.load_thread_summary(thread_id)
        except ThreadMemoryError:
            raise
        except Exception as e:
            raise StorageError("load_thread_summary", str(e), thread_id) from e

    async def save_thread_summary(self, summary: ThreadSummary) -> None:
        require_thread_id(summary.thread_id)
        try:
            ok = await self.store.save_thread_summary(summary)
        except ThreadMemoryError:
            raise
        except Exception as e:
            raise StorageError("save_thread_summary", str(e), summary.thread_id) from e
        if not ok:
            raise StorageError("save_thread_summary", "store rejected the summary", summary.thread_id)

    async def save_message_metadata(self, message_id: str, metadata: MessageMetadata) -> None:
        try:
            ok = await self.store.save_message_metadata(message_id, metadata)
        except ThreadMemoryError:
            raise
        except Exception as e:
            raise StorageError("save_message_metadata", f"message {message_id}: {e}") from e
        if not ok:
            raise StorageError("save_message_metadata", f"store rejected metadata for message {message_id}")

    async def query_messages_by_tag(self, thread_id: str, tag: str) -> list[Message]:
        require_thread_id(thread_id)
        try:
            messages = await self.store.query_messages_by_tag(thread_id, tag)
        except ThreadMemoryError:
            raise
        except Exception as e:
            raise StorageError("query_messages_by_tag", str(e), thread_id) from e
        return list(messages or [])


class InMemoryMessageStore:
    """Dict-backed MessageStore. Not persistent."""

    def __init__(self):
        self._messages: dict[str, list[Message]] = defaultdict(list)
        self._summaries: dict[str, ThreadSummary] = {}
        self._metadata: dict[str, MessageMetadata] = {}

    def add_message(self, thread_id: str, message: Message):
        messages = self._messages[thread_id]
        messages.append(message)
        messages.sort(key=lambda m: m.timestamp)

    def get_metadata(self, message_id: str) -> Optional[MessageMetadata]:
        return self._metadata.get(message_id)

    async def load_messages(self, thread_id: str) -> list[Message]:
        return list(self._messages.get(thread_id, []))

    async def save_thread_summary(self, summary: ThreadSummary) -> bool:
        self._summaries[summary.thread_id] = summary
        return True

    async def load_thread_summary(self, thread_id: str) -> Optional[ThreadSummary]:
        return self._summaries.get(thread_id)

    async def save_message_metadata(self, message_id: str, metadata: MessageMetadata) -> bool:
        known = any(m.id == message_id for msgs in self._messages.values() for m in msgs)
        if not known:
            return False
        self._metadata[message_id] = metadata
        return True

    async def query_messages_by_tag(self, thread_id: str, tag: str) -> list[Message]:
        return [
            m
            for m in self._messages.get(thread_id, [])
            if m.id in self._metadata and tag in self._metadata[m.id].tags
        ]


class PostgresMessageStore:
    """
    MessageStore on PostgreSQL via psycopg's async connection.

    Expects a connection opened with ``row_factory=dict_row`` and
    ``autocommit=True``. Call ``setup()`` once to create the tables.
    """

    def __init__(self, conn):
        self._conn = conn

    @classmethod
    async def connect(cls, dsn: str) -> "PostgresMessageStore":
        from psycopg import AsyncConnection
        from psycopg.rows import dict_row

        conn = await AsyncConnection.connect(
            dsn,
            autocommit=True,
            prepare_threshold=0,
            row_factory=dict_row,
        )
        return cls(conn)

    async def setup(self):
        """Create chat_messages and thread_summaries tables if missing."""
        async with self._conn.cursor() as cur:
            await cur.execute("""
                CREATE TABLE IF NOT EXISTS chat_messages (
                    id TEXT PRIMARY KEY,
                    thread_id TEXT NOT NULL,
                    sender TEXT NOT NULL,
                    type TEXT NOT NULL DEFAULT 'text',
                    content TEXT NOT NULL,
                    timestamp TIMESTAMPTZ NOT NULL,
                    metadata JSONB
                )
            """)
            await cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_chat_messages_thread
                ON chat_messages (thread_id, timestamp)
            """)
            await cur.execute("""
                CREATE TABLE IF NOT EXISTS thread_summaries (
                    thread_id TEXT PRIMARY KEY,
                    key_topics JSONB NOT NULL DEFAULT '[]',
                    main_insights JSONB NOT NULL DEFAULT '[]',
                    decisions_made JSONB NOT NULL DEFAULT '[]',
                    important_facts JSONB NOT NULL DEFAULT '{}',
                    frameworks_used JSONB NOT NULL DEFAULT '[]',
                    last_summarized_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                    message_count INT NOT NULL DEFAULT 0
                )
            """)
        logger.info("chat_messages and thread_summaries tables ready")

    async def save_message(self, thread_id: str, message: Message):
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO chat_messages (id, thread_id, sender, type, content, timestamp)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
                """,
                (
                    message.id,
                    thread_id,
                    message.sender.value,
                    message.type.value,
                    message.content,
                    message.timestamp,
                ),
            )

    async def load_messages(self, thread_id: str) -> list[Message]:
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                SELECT id, sender, type, content, timestamp
                FROM chat_messages
                WHERE thread_id = %s
                ORDER BY timestamp ASC
                """,
                (thread_id,),
            )
            rows = await cur.fetchall()
        return [Message.from_dict(row) for row in rows]

    async def save_thread_summary(self, summary: ThreadSummary) -> bool:
        from psycopg.types.json import Jsonb

        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO thread_summaries (
                    thread_id, key_topics, main_insights, decisions_made,
                    important_facts, frameworks_used, last_summarized_at, message_count
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (thread_id) DO UPDATE SET
                    key_topics = EXCLUDED.key_topics,
                    main_insights = EXCLUDED.main_insights,
                    decisions_made = EXCLUDED.decisions_made,
                    important_facts = EXCLUDED.important_facts,
                    frameworks_used = EXCLUDED.frameworks_used,
                    last_summarized_at = EXCLUDED.last_summarized_at,
                    message_count = EXCLUDED.message_count
                """,
                (
                    summary.thread_id,
                    Jsonb(summary.key_topics),
                    Jsonb(summary.main_insights),
                    Jsonb(summary.decisions_made),
                    Jsonb(summary.important_facts),
                    Jsonb(summary.frameworks_used),
                    summary.last_summarized_at,
                    summary.message_count,
                ),
            )
        return True

    async def load_thread_summary(self, thread_id: str) -> Optional[ThreadSummary]:
        async with self._conn.cursor() as cur:
            await cur.execute(
                "SELECT * FROM thread_summaries WHERE thread_id = %s",
                (thread_id,),
            )
            row = await cur.fetchone()
        if not row:
            return None
        return ThreadSummary.from_dict(row)

    async def save_message_metadata(self, message_id: str, metadata: MessageMetadata) -> bool:
        from psycopg.types.json import Jsonb

        async with self._conn.cursor() as cur:
            await cur.execute(
                "UPDATE chat_messages SET metadata = %s WHERE id = %s",
                (Jsonb(metadata.to_dict()), message_id),
            )
            return cur.rowcount > 0

    async def query_messages_by_tag(self, thread_id: str, tag: str) -> list[Message]:
        from psycopg.types.json import Jsonb

        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                SELECT id, sender, type, content, timestamp
                FROM chat_messages
                WHERE thread_id = %s AND metadata -> 'tags' @> %s
                ORDER BY timestamp ASC
                """,
                (thread_id, Jsonb([tag])),
            )
            rows = await cur.fetchall()
        return [Message.from_dict(row) for row in rows]
