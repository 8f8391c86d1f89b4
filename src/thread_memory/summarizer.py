"""
Conversation summarizer.

Produces two kinds of output from a batch of messages:

- ``summarize``: a structured ThreadSummaryFields (topics, insights,
  decisions, facts, frameworks) for the thread summary.
- ``digest``: a short free-text digest used by the context window builder
  in place of the messages it drops.

Each runs as a two-step pipeline: the engine path first, then a deterministic
keyword heuristic whenever the engine is unconfigured, fails, times out or
returns something unusable. Results are tagged with the path that produced
them. Neither method raises for well-formed input.
"""

import asyncio
import json
import logging
import re
from typing import Optional, Sequence

from . import lexicon
from .config import MemoryConfig
from .engine import GenerationEngine, classify_engine_error
from .errors import SummaryParseError
from .models import (
    DigestResult,
    Message,
    Sender,
    SummaryResult,
    SummarySource,
    ThreadSummaryFields,
)

logger = logging.getLogger(__name__)

MAX_KEY_TOPICS = 5
DEFAULT_TOPIC = "General Discussion"

STRUCTURED_SYSTEM_PROMPT = (
    "You are a conversation analyzer. Extract structured information and return valid JSON only."
)

STRUCTURED_PROMPT = """Analyze this conversation and extract structured information. Return a JSON object with:
{{
  "key_topics": ["topic1", "topic2", ...],
  "main_insights": ["insight1", "insight2", ...],
  "decisions_made": ["decision1", "decision2", ...],
  "important_facts": {{"fact_name": "value", ...}},
  "frameworks_used": ["framework1", "framework2", ...]
}}

Focus on:
- Key topics discussed (3-5 main topics)
- Main insights or conclusions (3-5 insights)
- Decisions or action items made
- Important facts, numbers, or data points
- Business frameworks or methodologies mentioned (e.g., MECE, Porter's 5 Forces, SWOT)

Conversation:
{conversation}

Return ONLY valid JSON, no additional text:"""

DIGEST_SYSTEM_PROMPT = (
    "You are a conversation summarizer. Create concise, informative summaries."
)

DIGEST_PROMPT = """Summarize the following conversation concisely. Focus on:
1. Key topics discussed
2. Important insights or decisions made
3. Relevant facts or data mentioned
4. Any frameworks or methodologies used

Conversation:
{conversation}

Provide a concise summary (2-3 sentences):"""

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def format_conversation(messages: Sequence[Message]) -> str:
    """Render messages as ``User: ...`` / ``Assistant: ...`` paragraphs."""
    lines = []
    for msg in messages:
        role = "User" if msg.sender == Sender.USER else "Assistant"
        lines.append(f"{role}: {msg.content}")
    return "\n\n".join(lines)


def count_turns(messages: Sequence[Message]) -> tuple[int, int]:
    """(user turns, assistant turns)."""
    user = sum(1 for m in messages if m.sender == Sender.USER)
    return user, len(messages) - user


def heuristic_digest(messages: Sequence[Message]) -> str:
    """Minimal engine-free digest: turn counts plus any matched topics."""
    user, assistant = count_turns(messages)
    text = (
        f"Previous conversation: {user} user messages and {assistant} assistant responses."
    )
    joined = " ".join(m.content for m in messages)
    topics = lexicon.match_families(joined, lexicon.SUMMARY_TOPICS)
    frameworks = lexicon.match_families(joined, lexicon.FRAMEWORKS)
    if topics:
        text += f" Topics: {', '.join(topics)}."
    if frameworks:
        text += f" Frameworks: {', '.join(frameworks)}."
    if not topics and not frameworks:
        text += " Key topics discussed in earlier part of conversation."
    return text


def heuristic_summary(messages: Sequence[Message]) -> ThreadSummaryFields:
    """Keyword-based structured summary used when the engine is unavailable."""
    user, assistant = count_turns(messages)
    joined = " ".join(m.content for m in messages)

    topics = lexicon.match_families(joined, lexicon.SUMMARY_TOPICS)
    return ThreadSummaryFields(
        key_topics=topics[:MAX_KEY_TOPICS] or [DEFAULT_TOPIC],
        main_insights=[f"{user} questions asked, {assistant} responses provided"],
        decisions_made=[],
        important_facts={
            "total_messages": len(messages),
            "user_messages": user,
            "assistant_messages": assistant,
        },
        frameworks_used=lexicon.match_families(joined, lexicon.FRAMEWORKS),
    )


def _string_list(value, limit: Optional[int] = None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise SummaryParseError(f"expected a list, got {type(value).__name__}")
    items: list[str] = []
    for item in value:
        text = str(item).strip() if item is not None else ""
        if text and text not in items:
            items.append(text)
    return items[:limit] if limit else items


def _facts(value) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise SummaryParseError(f"expected an object, got {type(value).__name__}")
    facts = {}
    for key, item in value.items():
        if isinstance(item, (int, float, str)) and not isinstance(item, bool):
            facts[str(key)] = item
        else:
            facts[str(key)] = json.dumps(item, ensure_ascii=False)
    return facts


def parse_structured_summary(raw: str) -> ThreadSummaryFields:
    """
    Parse an engine reply into ThreadSummaryFields.

    Accepts bare JSON or JSON wrapped in prose / markdown fences.

    Raises:
        SummaryParseError: no JSON object could be read from the reply.
    """
    match = _JSON_OBJECT_RE.search(raw or "")
    if not match:
        raise SummaryParseError("no JSON object in engine reply")
    try:
        data = json.loads(match.group())
    except json.JSONDecodeError as e:
        raise SummaryParseError(f"invalid JSON in engine reply: {e}") from e
    if not isinstance(data, dict):
        raise SummaryParseError("engine reply is not a JSON object")

    return ThreadSummaryFields(
        key_topics=_string_list(data.get("key_topics"), MAX_KEY_TOPICS),
        main_insights=_string_list(data.get("main_insights")),
        decisions_made=_string_list(data.get("decisions_made")),
        important_facts=_facts(data.get("important_facts")),
        frameworks_used=_string_list(data.get("frameworks_used")),
    )


class ConversationSummarizer:
    """Summarizes batches of messages, degrading to heuristics on failure."""

    def __init__(
        self,
        engine: Optional[GenerationEngine] = None,
        config: Optional[MemoryConfig] = None,
    ):
        self._engine = engine
        self.config = config or MemoryConfig()

    @property
    def has_engine(self) -> bool:
        return self._engine is not None

    async def summarize(self, messages: Sequence[Message]) -> SummaryResult:
        """Structured summary of the messages."""
        if not messages:
            return SummaryResult(heuristic_summary(messages), SummarySource.HEURISTIC)

        if self._engine is not None:
            recent = list(messages)[-self.config.max_summary_messages:]
            prompt = STRUCTURED_PROMPT.format(conversation=format_conversation(recent))
            try:
                raw = await self._generate(prompt, STRUCTURED_SYSTEM_PROMPT)
                return SummaryResult(parse_structured_summary(raw), SummarySource.ENGINE)
            except Exception as e:
                self._log_fallback("structured summary", e)

        return SummaryResult(heuristic_summary(messages), SummarySource.HEURISTIC)

    async def digest(self, messages: Sequence[Message]) -> DigestResult:
        """Short free-text digest of the messages."""
        if not messages:
            return DigestResult("", SummarySource.HEURISTIC)

        if self._engine is not None:
            recent = list(messages)[-self.config.max_summary_messages:]
            prompt = DIGEST_PROMPT.format(conversation=format_conversation(recent))
            try:
                text = (await self._generate(prompt, DIGEST_SYSTEM_PROMPT)).strip()
                if text:
                    return DigestResult(text, SummarySource.ENGINE)
                logger.warning("Engine returned an empty digest; using heuristic digest")
            except Exception as e:
                self._log_fallback("digest", e)

        return DigestResult(heuristic_digest(messages), SummarySource.HEURISTIC)

    async def _generate(self, prompt: str, system_instruction: str) -> str:
        return await asyncio.wait_for(
            self._engine.generate(
                prompt,
                temperature=self.config.summary_temperature,
                system_instruction=system_instruction,
            ),
            timeout=self.config.engine_timeout,
        )

    @staticmethod
    def _log_fallback(what: str, exc: BaseException):
        kind = classify_engine_error(exc)
        logger.warning(
            "Engine %s failed (%s): %s; falling back to heuristic",
            what,
            kind.value,
            exc,
        )
