"""
Conversation memory for long-running assistant threads.

Keeps each turn's context bounded while preserving continuity:

- Context window: the most recent messages verbatim plus a digest of older
  ones, within a token budget
- Thread summaries: structured topics / insights / decisions / facts /
  frameworks, recomputed every 20 new messages
- Message classification: keyword-derived tags, sentiment and complexity

Summaries come from a generation engine (any LangChain chat model) and fall
back to deterministic heuristics whenever the engine is unavailable.
"""

from .classifier import classify
from .config import MemoryConfig
from .context_window import ContextWindowBuilder, to_chat_messages
from .engine import ChatModelEngine, GenerationEngine, create_engine
from .errors import (
    EngineError,
    InvalidInputError,
    StorageError,
    ThreadMemoryError,
)
from .lifecycle import SummaryLifecycleManager, needs_summarization
from .models import (
    ContextPackage,
    DigestResult,
    Message,
    MessageMetadata,
    MessageType,
    Sender,
    SummaryResult,
    SummarySource,
    ThreadSummary,
    ThreadSummaryFields,
)
from .service import ConversationMemory, ThreadSession
from .storage import InMemoryMessageStore, MessageStore, PostgresMessageStore, StorageGateway
from .summarizer import ConversationSummarizer
from .token_budget import estimate, estimate_message_tokens, estimate_text, estimate_tokens

__all__ = [
    "ChatModelEngine",
    "ContextPackage",
    "ContextWindowBuilder",
    "ConversationMemory",
    "ConversationSummarizer",
    "DigestResult",
    "EngineError",
    "GenerationEngine",
    "InMemoryMessageStore",
    "InvalidInputError",
    "MemoryConfig",
    "Message",
    "MessageMetadata",
    "MessageStore",
    "MessageType",
    "PostgresMessageStore",
    "Sender",
    "StorageError",
    "StorageGateway",
    "SummaryLifecycleManager",
    "SummaryResult",
    "SummarySource",
    "ThreadMemoryError",
    "ThreadSession",
    "ThreadSummary",
    "ThreadSummaryFields",
    "classify",
    "create_engine",
    "estimate",
    "estimate_message_tokens",
    "estimate_text",
    "estimate_tokens",
    "needs_summarization",
    "to_chat_messages",
]
