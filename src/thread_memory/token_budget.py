"""
Token estimator for context windows.

Costs are approximate (~4 chars per token plus a fixed per-message overhead)
and always round up, so callers can treat them as an upper bound.
"""

import math
from typing import Iterable

from .models import Message

# Overhead for role markers and formatting around each message
TOKENS_PER_MESSAGE = 100
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough token estimate for raw text."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_message_tokens(msg: Message) -> int:
    """Estimate tokens for one message including its overhead."""
    return estimate_tokens(msg.content) + TOKENS_PER_MESSAGE


def estimate(messages: Iterable[Message]) -> int:
    """Estimate tokens for a sequence of messages."""
    return sum(estimate_message_tokens(m) for m in messages)


def estimate_text(text: str) -> int:
    """Estimate a free-text block that will be injected as its own message."""
    if not text:
        return 0
    return estimate_tokens(text) + TOKENS_PER_MESSAGE


def clip_to_tokens(text: str, max_tokens: int) -> str:
    """Clip text so that ``estimate_text(result) <= max_tokens`` where possible."""
    room = (max_tokens - TOKENS_PER_MESSAGE) * CHARS_PER_TOKEN
    if estimate_text(text) <= max_tokens:
        return text
    if room <= 3:
        return ""
    return text[: room - 3].rstrip() + "..."
