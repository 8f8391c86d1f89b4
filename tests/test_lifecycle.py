"""
Tests for the summary lifecycle, the ConversationMemory facade and storage.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import BASE_TIME, FailingEngine, RecordingEngine, fill_thread, make_message
from thread_memory.config import MemoryConfig
from thread_memory.errors import InvalidInputError, StorageError
from thread_memory.lifecycle import SummaryLifecycleManager, needs_summarization
from thread_memory.models import (
    Complexity,
    ContextPackage,
    Message,
    MessageMetadata,
    MessageType,
    Sender,
    Sentiment,
    SummarySource,
    ThreadSummary,
    ThreadSummaryFields,
)
from thread_memory.service import ConversationMemory
from thread_memory.storage import InMemoryMessageStore, PostgresMessageStore, StorageGateway
from thread_memory.summarizer import ConversationSummarizer

ENGINE_REPLY = (
    '{"key_topics": ["pricing"], "main_insights": ["margins are thin"], '
    '"decisions_made": [], "important_facts": {}, "frameworks_used": []}'
)


def _manager(store, engine=None, **config_kwargs) -> SummaryLifecycleManager:
    config = MemoryConfig(**config_kwargs)
    return SummaryLifecycleManager(
        StorageGateway(store),
        ConversationSummarizer(engine=engine, config=config),
        config,
    )


# ── Lifecycle Tests ──


class TestSummaryLifecycle:
    @pytest.mark.asyncio
    async def test_first_summary_is_computed_and_stored(self, store):
        fill_thread(store, "thread-1", 5)
        engine = RecordingEngine(reply=ENGINE_REPLY)
        manager = _manager(store, engine)
        summary = await manager.ensure_fresh("thread-1")
        assert summary.message_count == 5
        assert summary.key_topics == ["pricing"]
        assert await store.load_thread_summary("thread-1") == summary
        assert summary.source == SummarySource.ENGINE
        assert len(engine.calls) == 1

    @pytest.mark.asyncio
    async def test_below_threshold_returns_existing(self, store):
        fill_thread(store, "thread-1", 29)
        existing = ThreadSummary(thread_id="thread-1", key_topics=["old"], message_count=10)
        await store.save_thread_summary(existing)
        engine = RecordingEngine(reply=ENGINE_REPLY)
        summary = await _manager(store, engine).ensure_fresh("thread-1")
        assert summary is existing
        assert engine.calls == []

    @pytest.mark.asyncio
    async def test_threshold_reached_recomputes(self, store):
        fill_thread(store, "thread-1", 30)
        await store.save_thread_summary(ThreadSummary(thread_id="thread-1", message_count=10))
        engine = RecordingEngine(reply=ENGINE_REPLY)
        summary = await _manager(store, engine).ensure_fresh("thread-1")
        assert summary.message_count == 30
        assert len(engine.calls) == 1

    @pytest.mark.asyncio
    async def test_force_always_recomputes(self, store):
        fill_thread(store, "thread-1", 10)
        await store.save_thread_summary(ThreadSummary(thread_id="thread-1", message_count=10))
        engine = RecordingEngine(reply=ENGINE_REPLY)
        summary = await _manager(store, engine).ensure_fresh("thread-1", force=True)
        assert len(engine.calls) == 1
        assert summary.key_topics == ["pricing"]

    @pytest.mark.asyncio
    async def test_summary_is_replaced_not_merged(self, store):
        fill_thread(store, "thread-1", 25)
        await store.save_thread_summary(
            ThreadSummary(thread_id="thread-1", decisions_made=["expand to Hanoi"], message_count=5)
        )
        summary = await _manager(store, RecordingEngine(reply=ENGINE_REPLY)).ensure_fresh("thread-1")
        assert summary.decisions_made == []
        stored = await store.load_thread_summary("thread-1")
        assert stored.decisions_made == []

    @pytest.mark.asyncio
    async def test_engine_failure_still_persists_heuristic(self, store):
        fill_thread(store, "thread-1", 4)
        manager = _manager(store, FailingEngine(RuntimeError("503 unavailable")))
        summary = await manager.ensure_fresh("thread-1")
        assert summary.main_insights == ["2 questions asked, 2 responses provided"]
        assert summary.source == SummarySource.HEURISTIC
        assert await store.load_thread_summary("thread-1") == summary

    @pytest.mark.asyncio
    async def test_empty_thread(self, store):
        assert await _manager(store).ensure_fresh("thread-1") is None
        assert await store.load_thread_summary("thread-1") is None

    @pytest.mark.asyncio
    async def test_force_on_emptied_thread_replaces_stored_summary(self, store):
        await store.save_thread_summary(
            ThreadSummary(thread_id="thread-1", key_topics=["stale"], message_count=7)
        )
        batches = []

        class RecordingSummarizer(ConversationSummarizer):
            async def summarize(self, messages):
                batches.append(list(messages))
                return await super().summarize(messages)

        manager = SummaryLifecycleManager(StorageGateway(store), RecordingSummarizer(), MemoryConfig())
        summary = await manager.ensure_fresh("thread-1", force=True)
        assert batches == [[]]
        assert summary.source == SummarySource.HEURISTIC
        assert summary.message_count == 0
        assert summary.key_topics == ["General Discussion"]
        assert await store.load_thread_summary("thread-1") == summary

    @pytest.mark.asyncio
    async def test_emptied_thread_without_force_keeps_summary(self, store):
        existing = ThreadSummary(thread_id="thread-1", key_topics=["stale"], message_count=7)
        await store.save_thread_summary(existing)
        engine = RecordingEngine(reply=ENGINE_REPLY)
        assert await _manager(store, engine).ensure_fresh("thread-1") is existing
        assert engine.calls == []

    @pytest.mark.asyncio
    async def test_concurrent_calls_summarize_once(self, store):
        fill_thread(store, "thread-1", 25)
        engine = RecordingEngine(reply=ENGINE_REPLY, delay=0.05)
        manager = _manager(store, engine)
        first, second = await asyncio.gather(
            manager.ensure_fresh("thread-1"),
            manager.ensure_fresh("thread-1"),
        )
        assert len(engine.calls) == 1
        assert first.message_count == second.message_count == 25
        assert manager._thread_locks == {}

    @pytest.mark.asyncio
    async def test_thread_locks_released_after_calls(self, store):
        manager = _manager(store)
        for i in range(50):
            fill_thread(store, f"thread-{i}", 1, start=i)
        await asyncio.gather(*(manager.ensure_fresh(f"thread-{i}") for i in range(50)))
        assert manager._thread_locks == {}
        assert manager._lock_users == {}

    @pytest.mark.asyncio
    async def test_thread_lock_released_on_failure(self, store):
        store.load_messages = AsyncMock(side_effect=OSError("connection reset"))
        manager = _manager(store)
        with pytest.raises(StorageError):
            await manager.ensure_fresh("thread-1")
        assert manager._thread_locks == {}

    @pytest.mark.asyncio
    async def test_save_rejected_raises(self):
        class RejectingStore(InMemoryMessageStore):
            async def save_thread_summary(self, summary):
                return False

        store = RejectingStore()
        fill_thread(store, "thread-1", 3)
        with pytest.raises(StorageError) as excinfo:
            await _manager(store).ensure_fresh("thread-1")
        assert excinfo.value.operation == "save_thread_summary"

    @pytest.mark.asyncio
    async def test_load_failure_raises(self, store):
        store.load_thread_summary = AsyncMock(side_effect=TimeoutError("db timeout"))
        with pytest.raises(StorageError):
            await _manager(store).ensure_fresh("thread-1")

    @pytest.mark.asyncio
    async def test_invalid_thread_id(self, store):
        with pytest.raises(InvalidInputError):
            await _manager(store).ensure_fresh("   ")

    def test_is_stale(self, store):
        manager = _manager(store)
        existing = ThreadSummary(thread_id="t", message_count=10)
        assert manager.is_stale(None, 0) is True
        assert manager.is_stale(existing, 29) is False
        assert manager.is_stale(existing, 30) is True

    def test_needs_summarization(self):
        assert needs_summarization(20) is False
        assert needs_summarization(21) is True


# ── ConversationMemory Tests ──


class TestConversationMemory:
    @pytest.mark.asyncio
    async def test_classify_and_store_then_query_by_tag(self, store):
        msg = make_message(0, content="What pricing should we use?")
        store.add_message("thread-1", msg)
        store.add_message("thread-1", make_message(1, content="Let me think."))
        memory = ConversationMemory(store)

        metadata = await memory.classify_and_store(msg)
        assert "pricing" in metadata.tags
        assert store.get_metadata("msg-0") == metadata
        assert await memory.messages_by_tag("thread-1", "pricing") == [msg]

    @pytest.mark.asyncio
    async def test_classify_and_store_unknown_message(self, store):
        memory = ConversationMemory(store)
        with pytest.raises(StorageError):
            await memory.classify_and_store(make_message(7))

    @pytest.mark.asyncio
    async def test_session_scopes_thread(self, store):
        fill_thread(store, "thread-1", 22)
        fill_thread(store, "thread-2", 3, start=100)
        memory = ConversationMemory(store)
        session = memory.session("thread-2")
        package = await session.build_context()
        assert [m.id for m in package.messages] == ["msg-100", "msg-101", "msg-102"]
        summary = await session.ensure_fresh_summary()
        assert summary.thread_id == "thread-2"
        assert summary.message_count == 3

    def test_session_requires_thread_id(self, store):
        with pytest.raises(InvalidInputError):
            ConversationMemory(store).session("")

    @pytest.mark.asyncio
    async def test_get_conversation_history(self, store):
        history = fill_thread(store, "thread-1", 25)
        summary, recent = await ConversationMemory(store).get_conversation_history("thread-1")
        assert summary.startswith("Previous conversation:")
        assert recent == history[5:]

    @pytest.mark.asyncio
    async def test_build_chat_messages(self, store):
        fill_thread(store, "thread-1", 21)
        chat = await ConversationMemory(store).build_chat_messages("thread-1")
        assert len(chat) == 22

    def test_from_env_without_credentials(self, store, monkeypatch):
        for var in ("API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY"):
            monkeypatch.delenv(var, raising=False)
        memory = ConversationMemory.from_env(store)
        assert memory.summarizer.has_engine is False
        assert memory.needs_summarization(memory.config.recent_window_size + 1) is True


# ── Storage Tests ──


class _FakeCursor:
    def __init__(self, rows=None, rowcount=1):
        self.execute = AsyncMock()
        self.rows = rows or []
        self.rowcount = rowcount

    async def fetchall(self):
        return self.rows

    async def fetchone(self):
        return self.rows[0] if self.rows else None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


def _pg_store(cursor) -> PostgresMessageStore:
    conn = MagicMock()
    conn.cursor.return_value = cursor
    return PostgresMessageStore(conn)


class TestStorage:
    def test_message_from_legacy_row(self):
        msg = Message.from_dict(
            {"id": 42, "sender": "bot", "content": "Hi", "type": "exhibit_1", "timestamp": 1735689600000}
        )
        assert msg.id == "42"
        assert msg.sender == Sender.ASSISTANT
        assert msg.type == MessageType.EXHIBIT_1
        assert msg.timestamp == BASE_TIME

    def test_summary_from_row(self):
        summary = ThreadSummary.from_dict(
            {
                "thread_id": "thread-1",
                "key_topics": ["pricing"],
                "important_facts": {"stores": 3},
                "last_summarized_at": BASE_TIME,
                "message_count": 12,
            }
        )
        assert summary.key_topics == ["pricing"]
        assert summary.main_insights == []
        assert summary.message_count == 12
        assert summary.source is None

    def test_metadata_from_row(self):
        metadata = MessageMetadata.from_dict(
            {"tags": ["pricing"], "is_question": True, "sentiment": "negative", "complexity": "medium"}
        )
        assert metadata.tags == ["pricing"]
        assert metadata.is_question is True
        assert metadata.sentiment == Sentiment.NEGATIVE
        assert metadata.complexity == Complexity.MEDIUM
        assert metadata.frameworks_mentioned == []
        assert MessageMetadata.from_dict(metadata.to_dict()) == metadata

    def test_summary_fields_from_dict(self):
        fields = ThreadSummaryFields.from_dict({"key_topics": ["Pricing Strategy"], "important_facts": None})
        assert fields.key_topics == ["Pricing Strategy"]
        assert fields.important_facts == {}

    def test_context_package_to_dict(self):
        package = ContextPackage(messages=[make_message(0)], summary="Earlier: pricing.", total_estimated_tokens=105)
        data = package.to_dict()
        assert data["messages"][0]["id"] == "msg-0"
        assert data["messages"][0]["timestamp"] == BASE_TIME.isoformat()
        assert ContextPackage.from_dict(data) == package

    @pytest.mark.asyncio
    async def test_in_memory_keeps_timestamp_order(self, store):
        later = make_message(1)
        earlier = Message(
            id="early", sender=Sender.USER, content="first", timestamp=BASE_TIME - timedelta(seconds=5)
        )
        store.add_message("thread-1", later)
        store.add_message("thread-1", earlier)
        assert [m.id for m in await store.load_messages("thread-1")] == ["early", "msg-1"]

    @pytest.mark.asyncio
    async def test_postgres_load_messages(self):
        cursor = _FakeCursor(
            rows=[{"id": "m1", "sender": "user", "type": "text", "content": "Hello", "timestamp": BASE_TIME}]
        )
        messages = await _pg_store(cursor).load_messages("thread-1")
        assert messages[0].content == "Hello"
        sql, params = cursor.execute.call_args.args
        assert "ORDER BY timestamp ASC" in sql
        assert params == ("thread-1",)

    @pytest.mark.asyncio
    async def test_postgres_save_summary_upserts(self):
        cursor = _FakeCursor()
        ok = await _pg_store(cursor).save_thread_summary(ThreadSummary(thread_id="thread-1", message_count=4))
        assert ok is True
        sql, params = cursor.execute.call_args.args
        assert "ON CONFLICT (thread_id) DO UPDATE" in sql
        assert params[0] == "thread-1"
        assert params[-1] == 4

    @pytest.mark.asyncio
    async def test_postgres_metadata_for_missing_message(self):
        cursor = _FakeCursor(rowcount=0)
        store = _pg_store(cursor)
        memory = ConversationMemory(store)
        with pytest.raises(StorageError):
            await memory.classify_and_store(make_message(0))

    @pytest.mark.asyncio
    async def test_postgres_missing_summary(self):
        assert await _pg_store(_FakeCursor(rows=[])).load_thread_summary("thread-1") is None
