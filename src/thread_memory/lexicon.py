"""
Fixed keyword lexicons used by the classifier and the heuristic summarizer.

Every family maps a label to lowercase substrings (English and Vietnamese).
Matching is a case-insensitive substring test; order of entries is the order
labels are emitted in.
"""

from typing import Iterable

FRAMEWORKS: dict[str, tuple[str, ...]] = {
    "MECE": ("mece",),
    "Porter's 5 Forces": ("porter", "5 forces"),
    "SWOT": ("swot",),
    "BCG Matrix": ("bcg",),
    "Value Chain": ("value chain",),
    "PESTEL": ("pestel", "pest"),
    "Ansoff Matrix": ("ansoff",),
    "Blue Ocean Strategy": ("blue ocean",),
}

CHARTS: dict[str, tuple[str, ...]] = {
    "bar": ("bar chart", "biểu đồ cột"),
    "pie": ("pie chart", "biểu đồ tròn"),
    "line": ("line chart", "biểu đồ đường"),
    "scatter": ("scatter", "phân tán"),
    "heatmap": ("heatmap", "bản đồ nhiệt"),
    "matrix": ("matrix", "ma trận"),
}

# Message-level topic tags
TOPIC_TAGS: dict[str, tuple[str, ...]] = {
    "market": ("market", "thị trường"),
    "pricing": ("pricing", "giá"),
    "competitive": ("competitor", "đối thủ"),
    "financial": ("financial", "tài chính"),
    "strategy": ("strategy", "chiến lược"),
}

# Thread-level topic labels used by the heuristic summarizer
SUMMARY_TOPICS: dict[str, tuple[str, ...]] = {
    "Market Analysis": ("market", "thị trường"),
    "Pricing Strategy": ("pricing", "giá"),
    "Competitive Analysis": ("competitor", "đối thủ"),
    "Growth Strategy": ("growth", "tăng trưởng"),
    "Financial Analysis": ("financial", "tài chính"),
}

INSIGHT_KEYWORDS = (
    "insight",
    "key finding",
    "important",
    "critical",
    "notable",
    "điểm quan trọng",
    "phát hiện",
)

QUESTION_MARKERS = ("?", "how", "what", "why", "when", "where")

DECISION_KEYWORDS = (
    "decide",
    "decision",
    "choose",
    "select",
    "recommend",
    "quyết định",
    "khuyến nghị",
)

POSITIVE_WORDS = ("good", "great", "excellent", "positive", "tốt", "tuyệt vời")
NEGATIVE_WORDS = ("bad", "poor", "negative", "problem", "issue", "xấu", "vấn đề")


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    """True if any keyword occurs in the already-lowercased text."""
    return any(keyword in text for keyword in keywords)


def count_hits(text: str, keywords: Iterable[str]) -> int:
    """Number of distinct keywords occurring in the already-lowercased text."""
    return sum(1 for keyword in keywords if keyword in text)


def match_families(text: str, families: dict[str, tuple[str, ...]]) -> list[str]:
    """Labels of every family with at least one keyword in the text."""
    lowered = text.lower()
    return [label for label, keywords in families.items() if contains_any(lowered, keywords)]
