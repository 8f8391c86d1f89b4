"""
Thread summary lifecycle.

Decides when a thread needs a new structured summary and persists it as a
full replacement of the previous one.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from .config import MemoryConfig
from .errors import require_thread_id
from .models import ThreadSummary
from .storage import StorageGateway
from .summarizer import ConversationSummarizer

logger = logging.getLogger(__name__)


class SummaryLifecycleManager:
    """Auto-summarization policy with at most one pass in flight per thread."""

    def __init__(
        self,
        storage: StorageGateway,
        summarizer: ConversationSummarizer,
        config: Optional[MemoryConfig] = None,
    ):
        self.storage = storage
        self.summarizer = summarizer
        self.config = config or MemoryConfig()
        self._thread_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _thread_lock(self, thread_id: str):
        """Hold the thread's lock; drop it once no caller holds or awaits it."""
        if thread_id not in self._thread_locks:
            self._thread_locks[thread_id] = asyncio.Lock()
        lock = self._thread_locks[thread_id]
        self._lock_users[thread_id] = self._lock_users.get(thread_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[thread_id] -= 1
            if self._lock_users[thread_id] == 0:
                del self._lock_users[thread_id]
                del self._thread_locks[thread_id]

    def is_stale(self, existing: Optional[ThreadSummary], message_count: int) -> bool:
        """True when enough new messages arrived since ``existing`` was computed."""
        if existing is None:
            return True
        return message_count - existing.message_count >= self.config.resummarize_threshold

    async def ensure_fresh(self, thread_id: str, force: bool = False) -> Optional[ThreadSummary]:
        """
        Return an up-to-date summary for the thread, recomputing it if due.

        Concurrent calls for the same thread are serialized; a waiter
        re-reads the stored summary once it gets the lock, so it does not
        repeat a pass that just finished. A recomputed summary carries the
        summarizer path that produced it in ``source``.

        A forced call on a thread whose messages are gone replaces the stored
        summary with an empty snapshot (``message_count=0``).

        Returns:
            The current summary, or None for a thread with no messages and
            no stored summary.

        Raises:
            InvalidInputError: empty thread id.
            StorageError: loading or saving failed.
        """
        require_thread_id(thread_id)

        async with self._thread_lock(thread_id):
            existing = await self.storage.load_thread_summary(thread_id)
            messages = await self.storage.load_messages(thread_id)

            if not force and not self.is_stale(existing, len(messages)):
                logger.debug(
                    "Summary for thread %s is fresh (%d of %d messages summarized)",
                    thread_id,
                    existing.message_count,
                    len(messages),
                )
                return existing

            if not messages and existing is None:
                logger.debug("Thread %s has no messages to summarize", thread_id)
                return None

            result = await self.summarizer.summarize(messages)
            summary = ThreadSummary.from_fields(
                thread_id, result.fields, len(messages), source=result.source
            )
            await self.storage.save_thread_summary(summary)

            logger.info(
                "Summarized thread %s: %d messages via %s%s",
                thread_id,
                len(messages),
                result.source.value,
                " (forced)" if force else "",
            )
            return summary


def needs_summarization(message_count: int, recent_window_size: int = 20) -> bool:
    """True when a thread is longer than the verbatim window."""
    return message_count > recent_window_size
