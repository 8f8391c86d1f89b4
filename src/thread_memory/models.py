"""
Data model shared by the window builder, summarizer, classifier and storage.

All types are plain dataclasses with ``to_dict`` / ``from_dict`` helpers so the
storage layer can persist them as JSON without knowing their internals.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value) -> "Sender":
        if isinstance(value, Sender):
            return value
        text = str(value).lower()
        # Older rows store assistant turns as "bot"
        if text in ("bot", "model", "ai"):
            return cls.ASSISTANT
        return cls(text)


class MessageType(str, Enum):
    TEXT = "text"
    EXHIBIT_1 = "exhibit_1"
    EXHIBIT_2 = "exhibit_2"
    SCORE = "score"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SummarySource(str, Enum):
    """Which summarizer path produced a result."""

    ENGINE = "engine"
    HEURISTIC = "heuristic"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        # Millisecond epoch timestamps
        if value > 1e11:
            value = value / 1000
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class Message:
    """One conversational turn. Read-only to this package."""

    id: str
    sender: Sender
    content: str
    timestamp: datetime
    type: MessageType = MessageType.TEXT

    @property
    def is_user(self) -> bool:
        return self.sender == Sender.USER

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sender": self.sender.value,
            "content": self.content,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            id=str(data["id"]),
            sender=Sender.parse(data["sender"]),
            content=data.get("content") or "",
            type=MessageType(data.get("type") or MessageType.TEXT.value),
            timestamp=_parse_datetime(data["timestamp"]),
        )


FactValue = Union[str, int, float]


@dataclass
class ThreadSummaryFields:
    """The structured part of a thread summary."""

    key_topics: list[str] = field(default_factory=list)
    main_insights: list[str] = field(default_factory=list)
    decisions_made: list[str] = field(default_factory=list)
    important_facts: dict[str, FactValue] = field(default_factory=dict)
    frameworks_used: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "key_topics": list(self.key_topics),
            "main_insights": list(self.main_insights),
            "decisions_made": list(self.decisions_made),
            "important_facts": dict(self.important_facts),
            "frameworks_used": list(self.frameworks_used),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ThreadSummaryFields":
        return cls(
            key_topics=list(data.get("key_topics") or []),
            main_insights=list(data.get("main_insights") or []),
            decisions_made=list(data.get("decisions_made") or []),
            important_facts=dict(data.get("important_facts") or {}),
            frameworks_used=list(data.get("frameworks_used") or []),
        )


@dataclass
class ThreadSummary:
    """
    Snapshot summary of a thread. Replaced wholesale on each pass.

    ``source`` names the summarizer path behind a freshly computed summary.
    It is not persisted, so summaries loaded from storage carry None.
    """

    thread_id: str
    key_topics: list[str] = field(default_factory=list)
    main_insights: list[str] = field(default_factory=list)
    decisions_made: list[str] = field(default_factory=list)
    important_facts: dict[str, FactValue] = field(default_factory=dict)
    frameworks_used: list[str] = field(default_factory=list)
    last_summarized_at: datetime = field(default_factory=utcnow)
    message_count: int = 0
    source: Optional[SummarySource] = field(default=None, compare=False)

    @classmethod
    def from_fields(
        cls,
        thread_id: str,
        fields: ThreadSummaryFields,
        message_count: int,
        summarized_at: Optional[datetime] = None,
        source: Optional[SummarySource] = None,
    ) -> "ThreadSummary":
        return cls(
            thread_id=thread_id,
            key_topics=list(fields.key_topics),
            main_insights=list(fields.main_insights),
            decisions_made=list(fields.decisions_made),
            important_facts=dict(fields.important_facts),
            frameworks_used=list(fields.frameworks_used),
            last_summarized_at=summarized_at or utcnow(),
            message_count=message_count,
            source=source,
        )

    @property
    def fields(self) -> ThreadSummaryFields:
        return ThreadSummaryFields(
            key_topics=list(self.key_topics),
            main_insights=list(self.main_insights),
            decisions_made=list(self.decisions_made),
            important_facts=dict(self.important_facts),
            frameworks_used=list(self.frameworks_used),
        )

    def to_dict(self) -> dict:
        data = self.fields.to_dict()
        data["thread_id"] = self.thread_id
        data["last_summarized_at"] = self.last_summarized_at.isoformat()
        data["message_count"] = self.message_count
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ThreadSummary":
        return cls.from_fields(
            data["thread_id"],
            ThreadSummaryFields.from_dict(data),
            int(data.get("message_count") or 0),
            summarized_at=_parse_datetime(data.get("last_summarized_at") or utcnow()),
        )


@dataclass
class MessageMetadata:
    """Retrieval metadata derived from a single message's text."""

    has_attachment: bool = False
    attachment_type: Optional[str] = None
    frameworks_mentioned: list[str] = field(default_factory=list)
    charts_suggested: list[str] = field(default_factory=list)
    is_key_insight: bool = False
    is_question: bool = False
    is_decision: bool = False
    tags: list[str] = field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL
    complexity: Complexity = Complexity.LOW

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_attachment": self.has_attachment,
            "attachment_type": self.attachment_type,
            "frameworks_mentioned": list(self.frameworks_mentioned),
            "charts_suggested": list(self.charts_suggested),
            "is_key_insight": self.is_key_insight,
            "is_question": self.is_question,
            "is_decision": self.is_decision,
            "tags": list(self.tags),
            "sentiment": self.sentiment.value,
            "complexity": self.complexity.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MessageMetadata":
        return cls(
            has_attachment=bool(data.get("has_attachment", False)),
            attachment_type=data.get("attachment_type"),
            frameworks_mentioned=list(data.get("frameworks_mentioned") or []),
            charts_suggested=list(data.get("charts_suggested") or []),
            is_key_insight=bool(data.get("is_key_insight", False)),
            is_question=bool(data.get("is_question", False)),
            is_decision=bool(data.get("is_decision", False)),
            tags=list(data.get("tags") or []),
            sentiment=Sentiment(data.get("sentiment") or Sentiment.NEUTRAL.value),
            complexity=Complexity(data.get("complexity") or Complexity.LOW.value),
        )


@dataclass
class ContextPackage:
    """Bounded context sent to the generation engine for one turn."""

    messages: list[Message] = field(default_factory=list)
    summary: Optional[str] = None
    total_estimated_tokens: int = 0

    def to_dict(self) -> dict:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "summary": self.summary,
            "total_estimated_tokens": self.total_estimated_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ContextPackage":
        return cls(
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
            summary=data.get("summary"),
            total_estimated_tokens=int(data.get("total_estimated_tokens") or 0),
        )


@dataclass(frozen=True)
class SummaryResult:
    fields: ThreadSummaryFields
    source: SummarySource


@dataclass(frozen=True)
class DigestResult:
    text: str
    source: SummarySource
