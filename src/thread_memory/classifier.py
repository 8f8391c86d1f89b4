"""
Keyword-based message classifier.

Derives retrieval metadata (frameworks, chart suggestions, flags, sentiment,
complexity, topic tags) from a single message. Pure text scan: no I/O and no
learned parameters, so the same message always yields the same metadata.
"""

import re
from typing import Optional

from . import lexicon
from .models import Complexity, Message, MessageMetadata, Sender, Sentiment

HIGH_COMPLEXITY_WORDS = 100
MEDIUM_COMPLEXITY_WORDS = 50
MIN_SENTENCE_MARKS = 2  # strictly more than this many . ! ?

_DIGIT_RE = re.compile(r"\d")
_SENTENCE_MARK_RE = re.compile(r"[.!?]")


def classify(
    message: Message,
    has_attachment: bool = False,
    attachment_type: Optional[str] = None,
) -> MessageMetadata:
    """
    Classify a message.

    Attachment information is not derivable from text, so the caller passes
    it in when files were uploaded with the message.
    """
    content = message.content or ""
    lowered = content.lower()
    tags: list[str] = []

    is_key_insight = lexicon.contains_any(lowered, lexicon.INSIGHT_KEYWORDS)
    if is_key_insight:
        tags.append("insight")

    is_question = message.sender == Sender.USER and lexicon.contains_any(
        lowered, lexicon.QUESTION_MARKERS
    )
    if is_question:
        tags.append("question")

    is_decision = lexicon.contains_any(lowered, lexicon.DECISION_KEYWORDS)
    if is_decision:
        tags.append("decision")

    tags.extend(lexicon.match_families(lowered, lexicon.TOPIC_TAGS))

    return MessageMetadata(
        has_attachment=has_attachment,
        attachment_type=attachment_type if has_attachment else None,
        frameworks_mentioned=lexicon.match_families(lowered, lexicon.FRAMEWORKS),
        charts_suggested=lexicon.match_families(lowered, lexicon.CHARTS),
        is_key_insight=is_key_insight,
        is_question=is_question,
        is_decision=is_decision,
        tags=tags,
        sentiment=_sentiment(lowered),
        complexity=_complexity(content),
    )


def _sentiment(lowered: str) -> Sentiment:
    positive = lexicon.count_hits(lowered, lexicon.POSITIVE_WORDS)
    negative = lexicon.count_hits(lowered, lexicon.NEGATIVE_WORDS)
    if positive > negative:
        return Sentiment.POSITIVE
    if negative > positive:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


def _complexity(content: str) -> Complexity:
    word_count = len(content.split())
    if word_count > HIGH_COMPLEXITY_WORDS:
        return Complexity.HIGH
    if word_count > MEDIUM_COMPLEXITY_WORDS:
        has_digits = bool(_DIGIT_RE.search(content))
        sentence_marks = len(_SENTENCE_MARK_RE.findall(content))
        if has_digits and sentence_marks > MIN_SENTENCE_MARKS:
            return Complexity.HIGH
        return Complexity.MEDIUM
    return Complexity.LOW
