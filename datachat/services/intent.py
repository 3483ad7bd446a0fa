"""
Heuristic query intent classification.

The same classifier runs over the user's question and over prose returned by
the model, so it only relies on keywords and on which known columns the text
mentions.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from datachat.services import keywords
from datachat.services.stats import coerce_number

logger = logging.getLogger(__name__)

RANKING = "ranking"
DISTRIBUTION = "distribution"
CORRELATION = "correlation"
REGION_SALES = "region_sales"
CITY_SALES = "city_sales"
NONE = "none"

NUMERIC_CHECK_ROWS = 50
NUMERIC_MAJORITY = 0.7


@dataclass
class QueryIntent:
    kind: str = NONE
    category_column: Optional[str] = None
    value_column: Optional[str] = None
    target_column: Optional[str] = None
    x_column: Optional[str] = None
    y_column: Optional[str] = None
    mentions: List[str] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.kind != NONE


def find_mentions(text: str, column_name_map: Dict[str, str]) -> List[str]:
    """Lower-cased column names that appear in ``text``, in column order."""
    lowered = text.lower()
    return [key for key in column_name_map if key.lower() in lowered]


def resolve_column(word: str, column_name_map: Dict[str, str],
                   rows: Optional[List[Dict[str, Any]]] = None) -> Optional[str]:
    """
    Find the column for a concept word such as "city" or "sales".

    Exact map key first, then a map key containing the word, then a raw
    column name containing it.
    """
    if word in column_name_map:
        return column_name_map[word]
    for key, column in column_name_map.items():
        if word in key.lower():
            return column
    if rows:
        for column in rows[0]:
            if word in str(column).lower():
                return column
    return None


def is_mostly_numeric(rows: List[Dict[str, Any]], column: str) -> bool:
    """More than 70% of the first rows hold numbers in ``column``."""
    head = rows[:NUMERIC_CHECK_ROWS]
    if not head:
        return False
    numeric = sum(1 for row in head if not math.isnan(coerce_number(row.get(column))))
    return numeric > len(head) * NUMERIC_MAJORITY


def is_descriptive_text(text: str) -> bool:
    """Prose describing an analysis plan rather than a finished result."""
    return keywords.contains_any(text.lower(), keywords.DESCRIPTIVE_PHRASES)


def infer_chart_type(text: str) -> str:
    lowered = text.lower()
    for chart_type, hints in keywords.CHART_TYPE_HINTS:
        if keywords.contains_any(lowered, hints):
            return chart_type
    return "bar"


def _sales_archetype(word: str, lowered: str, mentions: List[str]) -> bool:
    about_word = word in lowered or any(word in m.lower() for m in mentions)
    asks_for_top = keywords.contains_any(lowered, keywords.SALES_SUPERLATIVES) or (
        "rank" in lowered and "sales" in lowered
    )
    return about_word and asks_for_top


def detect_sales_archetype(text: str, column_name_map: Dict[str, str],
                           rows: Optional[List[Dict[str, Any]]] = None) -> Optional[QueryIntent]:
    """
    "Which city/region has the highest sales" questions.

    City is checked before region. Returns None unless both the place column
    and the sales column resolve.
    """
    lowered = text.lower()
    mentions = find_mentions(text, column_name_map)
    for word, kind in (("city", CITY_SALES), ("region", REGION_SALES)):
        if not _sales_archetype(word, lowered, mentions):
            continue
        category = resolve_column(word, column_name_map, rows)
        value = resolve_column("sales", column_name_map, rows)
        if category and value:
            return QueryIntent(kind=kind, category_column=category, value_column=value, mentions=mentions)
        logger.debug(f"{kind} question without resolvable columns")
    return None


def _first_mention_with(mentions: List[str], hints, column_name_map: Dict[str, str]) -> Optional[str]:
    for mention in mentions:
        if keywords.contains_any(mention.lower(), hints):
            return column_name_map[mention]
    return None


def classify(text: str, column_name_map: Dict[str, str],
             rows: Optional[List[Dict[str, Any]]] = None) -> QueryIntent:
    """
    Classify a question or a piece of model prose.

    Args:
        text: Free text to inspect
        column_name_map: Lower-cased name -> actual column name
        rows: Dataset rows, needed for the correlation numeric check and for
            raw column fallback when resolving archetype columns

    Returns:
        QueryIntent; ``kind`` is NONE when nothing resolved
    """
    text = text or ""
    archetype = detect_sales_archetype(text, column_name_map, rows)
    if archetype:
        return archetype

    lowered = text.lower()
    mentions = find_mentions(text, column_name_map)

    if keywords.contains_any(lowered, keywords.RANKING_WORDS) and len(mentions) >= 2:
        category = _first_mention_with(mentions, keywords.RANKING_CATEGORY_HINTS, column_name_map)
        value = _first_mention_with(mentions, keywords.RANKING_VALUE_HINTS, column_name_map)
        if category and value:
            return QueryIntent(kind=RANKING, category_column=category, value_column=value, mentions=mentions)

    if keywords.contains_any(lowered, keywords.DISTRIBUTION_WORDS) and mentions:
        return QueryIntent(kind=DISTRIBUTION, target_column=column_name_map[mentions[0]], mentions=mentions)

    if keywords.contains_any(lowered, keywords.CORRELATION_WORDS) and len(mentions) >= 2 and rows:
        numeric = [column_name_map[m] for m in mentions if is_mostly_numeric(rows, column_name_map[m])]
        if len(numeric) >= 2:
            return QueryIntent(kind=CORRELATION, x_column=numeric[0], y_column=numeric[1], mentions=mentions)

    return QueryIntent(mentions=mentions)
