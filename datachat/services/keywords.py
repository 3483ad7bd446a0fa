"""
Keyword tables shared by the profiler, the intent classifier and the
response normalizer.

All matching is substring containment on lower-cased text.
"""
from typing import Iterable, Optional

# Semantic tags appended to a profiled column type, checked in this order
SEMANTIC_GROUPS = (
    ("geographic", ("region", "country", "state", "city", "province")),
    ("financial", ("sales", "revenue", "profit", "income", "cost")),
    ("temporal", ("date", "time", "year", "month", "day")),
    ("categorical", ("category", "type", "segment", "group")),
)

# Column name hints
ID_HINTS = ("id", "code")
RANKING_CATEGORY_HINTS = ("city", "region", "country", "state", "category", "product", "customer")
RANKING_VALUE_HINTS = ("sales", "revenue", "profit", "amount", "price", "count", "quantity", "value")
DEFAULT_CATEGORY_HINTS = ("category", "type", "region", "segment")

# Query / prose intent words
RANKING_WORDS = ("rank", "highest", "top", "most")
DISTRIBUTION_WORDS = ("distribution", "frequency", "count")
CORRELATION_WORDS = ("correlation", "relationship", "compare")
SALES_SUPERLATIVES = ("highest sales", "most sales", "maximum sales")

# Prose that describes an analysis plan instead of delivering a result
DESCRIPTIVE_PHRASES = (
    "to rank",
    "we need to",
    "this involves",
    "here's the analysis",
    "the visualization will be",
    "we would",
    "i would",
    "first step",
    "next step",
)

# Sentences containing these read like findings
INSIGHT_VERBS = ("show", "indicate", "suggest", "reveal", "average", "mean", "median")

# Chart type hints in free text, first match wins
CHART_TYPE_HINTS = (
    ("line", ("line chart", "trend")),
    ("pie", ("pie chart", "proportion")),
    ("scatter", ("scatter", "correlation")),
    ("boxplot", ("box plot", "distribution")),
    ("heatmap", ("heatmap", "matrix")),
)

# Leading chatter models put before a JSON payload, stripped in order
LLM_PREFIXES = (
    "```json",
    "```",
    "Here's the JSON response:",
    "Here's the analysis:",
    "Here is the JSON:",
    "As an AI,",
    "As an AI data analyst,",
    "I've analyzed",
    "Based on the data,",
    "Here's what I found:",
    "I can't",
    "I cannot",
    "I'm unable",
    "I am unable",
)


def contains_any(text: str, words: Iterable[str]) -> bool:
    """True if any of ``words`` occurs in ``text`` (already lower-cased)."""
    return any(word in text for word in words)


def semantic_tag(column_name: str) -> Optional[str]:
    """Return the semantic group of a column name, if any."""
    lowered = column_name.lower()
    for tag, words in SEMANTIC_GROUPS:
        if contains_any(lowered, words):
            return tag
    return None
