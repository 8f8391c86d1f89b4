"""
Exception hierarchy for the conversation memory subsystem.

Storage and input errors propagate to the orchestrator. Engine errors are
raised inside the engine layer and always recovered by the summarizer.
"""

from typing import Optional


class ThreadMemoryError(Exception):
    """Base class for every error raised by thread_memory."""


class InvalidInputError(ThreadMemoryError, ValueError):
    """A precondition on caller input was violated (e.g. empty thread id)."""


class StorageError(ThreadMemoryError):
    """The storage collaborator failed to load or save."""

    def __init__(self, operation: str, message: str = "", thread_id: Optional[str] = None):
        self.operation = operation
        self.thread_id = thread_id
        detail = message or "storage operation failed"
        if thread_id:
            detail = f"{detail} (thread {thread_id})"
        super().__init__(f"{operation}: {detail}")


class EngineError(ThreadMemoryError):
    """The generation engine could not produce a usable reply."""


class EngineConfigurationError(EngineError):
    """The engine is missing credentials or a model."""


class EngineRateLimitError(EngineError):
    """The engine rejected the request because of quota or rate limiting."""


class EngineUnavailableError(EngineError):
    """Transient network or provider failure."""


class SummaryParseError(EngineError):
    """The engine replied, but not with a parseable structured summary."""


def require_thread_id(thread_id) -> str:
    """Validate a thread id and return it unchanged."""
    if not isinstance(thread_id, str) or not thread_id.strip():
        raise InvalidInputError(f"thread_id must be a non-empty string, got {thread_id!r}")
    return thread_id
