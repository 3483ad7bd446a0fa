"""
Column type detection and per-column statistics for an in-memory dataset.

The profile is rebuilt for every request from the leading rows of the
dataset and feeds both the LLM prompt and the column resolution used by the
direct analysis engine.
"""
import logging
import math
import warnings
from collections import Counter
from typing import Any, Dict, List, Optional

import pandas as pd

from datachat.core.config import get_settings
from datachat.core.performance import track_performance
from datachat.core.schemas import DataProfile
from datachat.services import keywords
from datachat.services.stats import (
    coerce_number, floor_quantile, is_blank, median, population_std, to_label,
)

logger = logging.getLogger(__name__)

TYPE_THRESHOLD = 0.7
CATEGORICAL_MAX_UNIQUE = 20
CATEGORICAL_MAX_RATIO = 0.2
TOP_VALUES = 5


def build_column_name_map(columns: List[str]) -> Dict[str, str]:
    """Lower-cased column name -> actual column name (last one wins on collisions)."""
    return {col.lower(): col for col in columns}


def _parses_as_date(text: str) -> bool:
    try:
        return not pd.isna(pd.to_datetime(text, errors='coerce'))
    except (ValueError, TypeError, OverflowError):
        return False


def _decimal_places(value: float) -> Optional[int]:
    text = repr(float(value))
    if 'e' in text or 'inf' in text or 'nan' in text:
        return None
    return len(text.split('.')[1]) if '.' in text else 0


def _is_rating(value: float) -> bool:
    if not 0 <= value <= 10:
        return False
    places = _decimal_places(value)
    return value.is_integer() or (places is not None and places <= 1)


def _numeric_subtype(column: str, numeric_values: List[float], unique_count: int, valid: int) -> str:
    lowered = column.lower()
    if keywords.contains_any(lowered, keywords.ID_HINTS) and unique_count / valid > 0.9:
        return "id"
    if all(v.is_integer() and 1900 <= v <= 2100 for v in numeric_values):
        return "year"
    if all(_is_rating(v) for v in numeric_values):
        return "rating"
    return "numeric"


def _numeric_stats(values: List[float]) -> Dict[str, float]:
    ordered = sorted(values)
    n = len(ordered)
    # TODO: confirm with product whether q1 should read the 0.25 index; both
    # quartiles currently come from floor(n * 0.75).
    q3 = floor_quantile(ordered, 0.75)
    return {
        "min": ordered[0],
        "max": ordered[-1],
        "mean": sum(ordered) / n,
        "median": median(ordered),
        "q1": q3,
        "q3": q3,
        "stdDev": population_std(ordered),
        "count": n,
    }


def _frequency_stats(sample: List[Dict[str, Any]], column: str, unique_count: int) -> Dict[str, Any]:
    counts = Counter(
        to_label(row.get(column)) for row in sample if not is_blank(row.get(column))
    )
    total = sum(counts.values())
    # most_common keeps first-seen order between equal counts
    top = counts.most_common(TOP_VALUES)
    return {
        "uniqueCount": unique_count,
        "mostCommon": [
            {"value": value, "count": count, "percentage": count / total * 100}
            for value, count in top
        ],
        "totalCount": total,
    }


def profile_column(sample: List[Dict[str, Any]], column: str):
    """
    Classify one column and compute its statistics.

    Returns:
        (type string including any semantic suffix, stats dict or None)
    """
    numeric_count = date_count = boolean_count = null_count = 0
    unique_values = set()
    numeric_values: List[float] = []

    with warnings.catch_warnings():
        # dateutil fallback parsing warns about inferred formats
        warnings.simplefilter("ignore")
        for row in sample:
            value = row.get(column)
            if is_blank(value):
                null_count += 1
                continue

            unique_values.add(to_label(value).lower())

            number = coerce_number(value)
            if not math.isnan(number):
                numeric_count += 1
                numeric_values.append(number)
            elif isinstance(value, bool) or value in ("true", "false"):
                boolean_count += 1
            elif _parses_as_date(str(value)):
                date_count += 1

    valid = len(sample) - null_count
    unique_count = len(unique_values)

    if valid == 0:
        column_type = "unknown"
    elif numeric_count / valid > TYPE_THRESHOLD:
        column_type = _numeric_subtype(column, numeric_values, unique_count, valid)
    elif date_count / valid > TYPE_THRESHOLD:
        column_type = "date"
    elif boolean_count / valid > TYPE_THRESHOLD:
        column_type = "boolean"
    elif unique_count <= CATEGORICAL_MAX_UNIQUE or unique_count / valid < CATEGORICAL_MAX_RATIO:
        column_type = "categorical"
    else:
        column_type = "text"

    tag = keywords.semantic_tag(column)
    if tag:
        column_type += f" ({tag})"

    if "numeric" in column_type and numeric_values:
        return column_type, _numeric_stats(numeric_values)
    if "categorical" in column_type or "text" in column_type:
        return column_type, _frequency_stats(sample, column, unique_count)
    return column_type, None


@track_performance("profile_dataset")
def profile(rows: List[Dict[str, Any]], sample_size: Optional[int] = None) -> DataProfile:
    """
    Profile the leading rows of a dataset.

    Args:
        rows: Dataset rows; the column set comes from the first row
        sample_size: Rows to inspect, defaults to PROFILE_SAMPLE_SIZE

    Returns:
        DataProfile with column types, column statistics and the column name map
    """
    if not rows:
        return DataProfile(row_count=0, column_types={}, column_stats={}, column_name_map={})

    sample_size = sample_size or get_settings().profile_sample_size
    sample = rows[:sample_size]
    columns = list(rows[0].keys())

    column_types: Dict[str, str] = {}
    column_stats: Dict[str, Dict[str, Any]] = {}
    for column in columns:
        column_type, stats = profile_column(sample, column)
        column_types[column] = column_type
        if stats is not None:
            column_stats[column] = stats

    logger.debug(
        f"Profiled {len(columns)} columns from {len(sample)} of {len(rows)} rows",
        extra={"column_types": column_types}
    )
    return DataProfile(
        row_count=len(rows),
        column_types=column_types,
        column_stats=column_stats,
        column_name_map=build_column_name_map(columns),
    )
