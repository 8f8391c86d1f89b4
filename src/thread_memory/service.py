"""
Orchestrator-facing entry points.

``ConversationMemory`` wires the storage gateway, summarizer, window builder
and lifecycle manager together. ``ThreadSession`` scopes those operations to
one thread so the orchestrator can hold it for the thread's lifetime instead
of sharing a module-level engine session.
"""

import logging
from typing import Optional

from .classifier import classify
from .config import MemoryConfig
from .context_window import ContextWindowBuilder, to_chat_messages
from .engine import GenerationEngine, create_engine
from .errors import require_thread_id
from .lifecycle import SummaryLifecycleManager, needs_summarization
from .models import ContextPackage, Message, MessageMetadata, ThreadSummary
from .storage import MessageStore, StorageGateway
from .summarizer import ConversationSummarizer

logger = logging.getLogger(__name__)


class ConversationMemory:
    """
    Context windowing, thread summaries and message classification.

    Usage:
        memory = ConversationMemory(store, engine=engine)
        package = await memory.build_context(thread_id)
        ...
        await memory.ensure_fresh_summary(thread_id)
    """

    def __init__(
        self,
        store: MessageStore,
        engine: Optional[GenerationEngine] = None,
        config: Optional[MemoryConfig] = None,
    ):
        self.config = config or MemoryConfig()
        self.storage = StorageGateway(store)
        self.summarizer = ConversationSummarizer(engine=engine, config=self.config)
        self.window_builder = ContextWindowBuilder(self.storage, self.summarizer, self.config)
        self.lifecycle = SummaryLifecycleManager(self.storage, self.summarizer, self.config)

    @classmethod
    def from_env(cls, store: MessageStore) -> "ConversationMemory":
        """Build with MemoryConfig.from_env() and the default engine, if configured."""
        config = MemoryConfig.from_env()
        return cls(store, engine=create_engine(config), config=config)

    def session(self, thread_id: str) -> "ThreadSession":
        return ThreadSession(self, require_thread_id(thread_id))

    async def build_context(
        self,
        thread_id: str,
        recent_window_size: Optional[int] = None,
    ) -> ContextPackage:
        return await self.window_builder.build(thread_id, recent_window_size)

    async def ensure_fresh_summary(self, thread_id: str, force: bool = False) -> Optional[ThreadSummary]:
        return await self.lifecycle.ensure_fresh(thread_id, force=force)

    def classify_message(
        self,
        message: Message,
        has_attachment: bool = False,
        attachment_type: Optional[str] = None,
    ) -> MessageMetadata:
        return classify(message, has_attachment=has_attachment, attachment_type=attachment_type)

    async def classify_and_store(
        self,
        message: Message,
        has_attachment: bool = False,
        attachment_type: Optional[str] = None,
    ) -> MessageMetadata:
        """Classify a message and persist its metadata."""
        metadata = self.classify_message(message, has_attachment, attachment_type)
        await self.storage.save_message_metadata(message.id, metadata)
        logger.debug("Stored metadata for message %s: tags=%s", message.id, metadata.tags)
        return metadata

    async def messages_by_tag(self, thread_id: str, tag: str) -> list[Message]:
        return await self.storage.query_messages_by_tag(thread_id, tag)

    async def get_thread_summary(self, thread_id: str) -> Optional[ThreadSummary]:
        return await self.storage.load_thread_summary(thread_id)

    async def save_thread_summary(self, summary: ThreadSummary) -> None:
        await self.storage.save_thread_summary(summary)

    async def get_conversation_history(self, thread_id: str) -> tuple[Optional[str], list[Message]]:
        """(digest of older turns, recent turns) for a thread."""
        package = await self.build_context(thread_id)
        return package.summary, package.messages

    async def build_chat_messages(self, thread_id: str) -> list:
        """Context package rendered as LangChain messages."""
        return to_chat_messages(await self.build_context(thread_id))

    def needs_summarization(self, message_count: int) -> bool:
        return needs_summarization(message_count, self.config.recent_window_size)


class ThreadSession:
    """ConversationMemory operations bound to one thread."""

    def __init__(self, memory: ConversationMemory, thread_id: str):
        self.memory = memory
        self.thread_id = thread_id

    async def build_context(self, recent_window_size: Optional[int] = None) -> ContextPackage:
        return await self.memory.build_context(self.thread_id, recent_window_size)

    async def ensure_fresh_summary(self, force: bool = False) -> Optional[ThreadSummary]:
        return await self.memory.ensure_fresh_summary(self.thread_id, force=force)

    async def chat_messages(self) -> list:
        return await self.memory.build_chat_messages(self.thread_id)

    def classify_message(self, message: Message, **kwargs) -> MessageMetadata:
        return self.memory.classify_message(message, **kwargs)

    async def classify_and_store(self, message: Message, **kwargs) -> MessageMetadata:
        return await self.memory.classify_and_store(message, **kwargs)

    async def messages_by_tag(self, tag: str) -> list[Message]:
        return await self.memory.messages_by_tag(self.thread_id, tag)
