"""
Shared pytest setup.

Adds ``src`` to sys.path so tests import ``thread_memory`` without an install,
and provides message factories and fake generation engines.
"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src to PYTHONPATH
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from thread_memory.models import Message, Sender  # noqa: E402
from thread_memory.storage import InMemoryMessageStore  # noqa: E402

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_message(i: int, content: str = None, sender: Sender = None) -> Message:
    """Alternating user/assistant message; even indices are user turns."""
    if sender is None:
        sender = Sender.USER if i % 2 == 0 else Sender.ASSISTANT
    if content is None:
        role = "User" if sender == Sender.USER else "Assistant"
        content = f"{role} message {i}"
    return Message(
        id=f"msg-{i}",
        sender=sender,
        content=content,
        timestamp=BASE_TIME + timedelta(seconds=i),
    )


def fill_thread(store: InMemoryMessageStore, thread_id: str, count: int, start: int = 0) -> list:
    messages = [make_message(i) for i in range(start, start + count)]
    for msg in messages:
        store.add_message(thread_id, msg)
    return messages


class RecordingEngine:
    """Engine that returns a fixed reply and records every call."""

    def __init__(self, reply: str = "Digest of the earlier conversation.", delay: float = 0):
        self.reply = reply
        self.delay = delay
        self.calls = []

    async def generate(self, prompt, temperature, system_instruction):
        self.calls.append(
            {"prompt": prompt, "temperature": temperature, "system_instruction": system_instruction}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.reply


class FailingEngine:
    """Engine that always raises the given exception."""

    def __init__(self, exc: BaseException):
        self.exc = exc
        self.calls = 0

    async def generate(self, prompt, temperature, system_instruction):
        self.calls += 1
        raise self.exc


@pytest.fixture
def store():
    return InMemoryMessageStore()
