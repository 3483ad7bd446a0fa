"""
Numeric coercion and descriptive statistics shared by the profiler and the
direct analysis engine.

Cells arrive as whatever the client sent (mostly strings from the CSV
parser), so every computation goes through ``coerce_number`` first.
"""
import math
import re
from numbers import Number
from typing import Any, Iterable, List, Sequence

import numpy as np
import pandas as pd

_NUMERIC_RE = re.compile(r'^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$')
_INFINITY_RE = re.compile(r'^[+-]?Infinity$')

UNKNOWN_LABEL = "Unknown"


def is_blank(value: Any) -> bool:
    """None, NaN and empty strings count as missing cells."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, float):
        return math.isnan(value)
    return False


def coerce_number(value: Any) -> float:
    """
    Convert a cell to a float, returning NaN when it is not numeric.

    Blank cells and booleans are not numbers; strings must look like a
    plain decimal literal after trimming whitespace.
    """
    if value is None or isinstance(value, bool):
        return math.nan
    if isinstance(value, Number):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if _NUMERIC_RE.match(text):
            return float(text)
        if _INFINITY_RE.match(text):
            return -math.inf if text.startswith('-') else math.inf
    return math.nan


def coerce_series(values: Iterable[Any], blank_as_zero: bool = False) -> pd.Series:
    """Coerce a column to a float Series; blanks become 0.0 when asked."""
    numbers = [
        0.0 if blank_as_zero and is_blank(v) else coerce_number(v)
        for v in values
    ]
    return pd.Series(numbers, dtype=float)


def to_label(value: Any) -> str:
    """String form of a category cell, "Unknown" for blanks."""
    if is_blank(value):
        return UNKNOWN_LABEL
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_number(value: float) -> str:
    """Thousands-separated rendering with at most three decimals."""
    if value is None or (isinstance(value, float) and not math.isfinite(value)):
        return str(value)
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.3f}".rstrip("0").rstrip(".")


def median(sorted_values: Sequence[float]) -> float:
    """Middle value; the two middle values are averaged for even lengths."""
    n = len(sorted_values)
    if n == 0:
        return math.nan
    mid = n // 2
    if n % 2 == 0:
        return (sorted_values[mid - 1] + sorted_values[mid]) / 2
    return sorted_values[mid]


def floor_quantile(sorted_values: Sequence[float], fraction: float) -> float:
    """Element at ``floor(n * fraction)`` of an ascending sequence, not interpolated."""
    if not sorted_values:
        return math.nan
    index = min(int(math.floor(len(sorted_values) * fraction)), len(sorted_values) - 1)
    return sorted_values[index]


def population_std(values: Sequence[float]) -> float:
    """Standard deviation dividing by N."""
    if len(values) == 0:
        return math.nan
    return float(np.std(np.asarray(values, dtype=float), ddof=0))


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float:
    """
    Pearson correlation by the sum-of-products formula.

    Returns NaN when there are no points or either side has zero variance.
    """
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    n = len(x)
    if n == 0:
        return math.nan

    sum_x, sum_y = x.sum(), y.sum()
    numerator = n * (x * y).sum() - sum_x * sum_y
    variance_x = n * (x * x).sum() - sum_x * sum_x
    variance_y = n * (y * y).sum() - sum_y * sum_y
    if variance_x <= 0 or variance_y <= 0:
        return math.nan
    return float(numerator / (math.sqrt(variance_x) * math.sqrt(variance_y)))


def summarize(values: List[float]) -> dict:
    """Mean, median, spread and floor-index quartiles of a list of numbers."""
    ordered = sorted(values)
    return {
        "mean": float(np.mean(ordered)) if ordered else math.nan,
        "median": median(ordered),
        "standardDeviation": population_std(ordered),
        "min": ordered[0] if ordered else math.nan,
        "max": ordered[-1] if ordered else math.nan,
        "count": len(ordered),
        "quartile1": floor_quantile(ordered, 0.25),
        "quartile3": floor_quantile(ordered, 0.75),
    }
