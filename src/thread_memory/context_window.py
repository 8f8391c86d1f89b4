"""
Sliding-window context builder.

Builds the bounded context sent to the generation engine for one turn:

- the most recent ``recent_window_size`` messages, verbatim
- a digest of every older message, produced by the summarizer

Storage keeps the complete history; the builder only decides what the engine
sees and never writes anything back.
"""

import logging
from typing import Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from .config import MemoryConfig
from .errors import InvalidInputError, require_thread_id
from .models import ContextPackage, Message, Sender
from .storage import StorageGateway
from .summarizer import ConversationSummarizer, heuristic_digest
from .token_budget import clip_to_tokens, estimate, estimate_text

logger = logging.getLogger(__name__)

SUMMARY_PREAMBLE = "Context from previous conversation: "
SUMMARY_ACKNOWLEDGEMENT = "Understood. I have the context from the previous conversation."


def _require_window(window: int):
    if window < 1:
        raise InvalidInputError(f"recent_window_size must be >= 1, got {window}")


class ContextWindowBuilder:
    """
    Sliding-window context builder.

    Usage:
        builder = ContextWindowBuilder(storage, summarizer, config)
        package = await builder.build(thread_id)
        # Send package.summary + package.messages to the engine
    """

    def __init__(
        self,
        storage: StorageGateway,
        summarizer: ConversationSummarizer,
        config: Optional[MemoryConfig] = None,
    ):
        self.storage = storage
        self.summarizer = summarizer
        self.config = config or MemoryConfig()

    async def build(
        self,
        thread_id: str,
        recent_window_size: Optional[int] = None,
    ) -> ContextPackage:
        """
        Build the context package for a thread.

        Raises:
            InvalidInputError: empty thread id or a window size below 1.
            StorageError: the history could not be loaded.
        """
        require_thread_id(thread_id)
        window = self.config.recent_window_size if recent_window_size is None else recent_window_size
        _require_window(window)

        history = await self.storage.load_messages(thread_id)
        return await self.build_from_history(history, window)

    async def build_from_history(
        self,
        history: Sequence[Message],
        recent_window_size: int,
    ) -> ContextPackage:
        """
        Apply the window policy to an already-loaded history.

        Raises:
            InvalidInputError: a window size below 1.
        """
        _require_window(recent_window_size)
        if len(history) <= recent_window_size:
            logger.debug(
                "All %d messages fit in the window of %d, no digest needed",
                len(history),
                recent_window_size,
            )
            return ContextPackage(
                messages=list(history),
                summary=None,
                total_estimated_tokens=estimate(history),
            )

        prefix = list(history[:-recent_window_size])
        tail = list(history[-recent_window_size:])

        digest = await self._digest(prefix)
        digest = self._fit_digest(digest, prefix, tail)

        logger.info(
            "Context window: digested %d older messages, kept %d verbatim",
            len(prefix),
            len(tail),
        )
        return ContextPackage(
            messages=tail,
            summary=digest,
            total_estimated_tokens=estimate(tail) + estimate_text(digest),
        )

    async def _digest(self, prefix: list[Message]) -> str:
        try:
            result = await self.summarizer.digest(prefix)
            if result.text:
                return result.text
        except Exception as e:
            logger.warning("Digest of %d messages failed: %s", len(prefix), e)
        return heuristic_digest(prefix)

    def _fit_digest(self, digest: str, prefix: list[Message], tail: list[Message]) -> str:
        """Clip the digest to the room the tail leaves in the token budget."""
        budget = self.config.max_context_tokens
        room = budget - estimate(tail)
        if estimate_text(digest) <= room:
            return digest

        minimal = heuristic_digest(prefix)
        if estimate_text(minimal) > room:
            logger.warning(
                "Recent messages leave %d of %d tokens; keeping the minimal digest over budget",
                room,
                budget,
            )
            return minimal if len(minimal) < len(digest) else digest

        logger.info("Clipped digest to fit %d remaining tokens", room)
        return clip_to_tokens(digest, room)


def to_chat_messages(package: ContextPackage) -> list[BaseMessage]:
    """
    Render a context package as LangChain messages.

    The digest becomes a user turn followed by an assistant acknowledgement so
    the recent turns keep alternating roles.
    """
    result: list[BaseMessage] = []
    if package.summary:
        result.append(HumanMessage(content=SUMMARY_PREAMBLE + package.summary, id="memory-summary"))
        result.append(AIMessage(content=SUMMARY_ACKNOWLEDGEMENT))

    for msg in package.messages:
        if msg.sender == Sender.USER:
            result.append(HumanMessage(content=msg.content, id=msg.id))
        else:
            result.append(AIMessage(content=msg.content, id=msg.id))
    return result
