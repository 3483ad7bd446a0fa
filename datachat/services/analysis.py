"""
Direct analysis engine.

Deterministic group-by, frequency and correlation analyses over the full
dataset. Used as the fallback when the model's answer is unusable and as the
primary path for "which city/region has the highest sales" questions.

Every builder returns a complete result dict:
``{analysis, visualization, insights, statistics}``.
"""
import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Union

import pandas as pd

from datachat.services import intent as intents
from datachat.services import keywords
from datachat.services.stats import (
    coerce_series, floor_quantile, format_number, pearson, summarize, to_label,
)

logger = logging.getLogger(__name__)

DEFAULT_COLORS = [
    "rgba(75, 192, 192, 0.6)",
    "rgba(54, 162, 235, 0.6)",
    "rgba(255, 99, 132, 0.6)",
    "rgba(255, 206, 86, 0.6)",
    "rgba(153, 102, 255, 0.6)",
    "rgba(255, 159, 64, 0.6)",
    "rgba(201, 203, 207, 0.6)",
    "rgba(255, 99, 71, 0.6)",
]
EXTENDED_COLORS = DEFAULT_COLORS + [
    "rgba(50, 205, 50, 0.6)",
    "rgba(138, 43, 226, 0.6)",
]
BASE_COLOR = DEFAULT_COLORS[0]
HIGHLIGHT_COLOR = "rgba(255, 99, 132, 0.6)"

DISTRIBUTION_TOP = 15
DEFAULT_TOP = 10
PIE_TOP = 8
SCATTER_ROWS = 100
HEATMAP_COLUMNS = 5
CHART_TYPE_SAMPLE_ROWS = 20

ORDINALS = ("highest", "second highest", "third highest")


def border_for(color: Union[str, List[str]]) -> Union[str, List[str]]:
    """Opaque border from a 0.6-alpha fill, element-wise for lists."""
    if isinstance(color, list):
        return [border_for(c) for c in color]
    if isinstance(color, str):
        return color.replace("0.6", "1", 1)
    return color


def palette(count: int, colors: Sequence[str] = DEFAULT_COLORS) -> List[str]:
    return [colors[i % len(colors)] for i in range(count)]


def _fixed(value: float, digits: int = 2) -> str:
    return "NaN" if math.isnan(value) else f"{value:.{digits}f}"


def _columns(rows: List[Dict[str, Any]]) -> List[str]:
    return list(rows[0].keys()) if rows else []


def _column_values(rows: List[Dict[str, Any]], column: str) -> List[Any]:
    return [row.get(column) for row in rows]


def group_totals(rows: List[Dict[str, Any]], category_column: str, value_column: str) -> pd.Series:
    """
    Sum ``value_column`` per category, largest first.

    Blank values count as zero; other non-numeric values are skipped. Ties
    keep first-seen order.
    """
    labels = pd.Series([to_label(v) for v in _column_values(rows, category_column)], dtype=object)
    values = coerce_series(_column_values(rows, value_column), blank_as_zero=True)
    mask = values.notna()
    if not mask.any():
        return pd.Series(dtype=float)
    totals = values[mask].groupby(labels[mask], sort=False).sum()
    return totals.sort_values(ascending=False, kind="stable")


def value_frequencies(rows: List[Dict[str, Any]], column: str) -> pd.Series:
    """Occurrences of each label in ``column``, most common first."""
    labels = pd.Series([to_label(v) for v in _column_values(rows, column)], dtype=object)
    if labels.empty:
        return pd.Series(dtype=int)
    counts = labels.groupby(labels, sort=False).size()
    return counts.sort_values(ascending=False, kind="stable")


def _bar_dataset(label: str, values: List[float], background: Union[str, List[str]]) -> Dict[str, Any]:
    return {
        "label": label,
        "data": values,
        "backgroundColor": background,
        "borderColor": border_for(background),
    }


def _highlight_first(count: int) -> List[str]:
    return [HIGHLIGHT_COLOR if i == 0 else BASE_COLOR for i in range(count)]


def rank_by_category(rows: List[Dict[str, Any]], category_column: str, value_column: str) -> Dict[str, Any]:
    """Group-by-sum ranking of ``value_column`` over ``category_column``."""
    totals = group_totals(rows, category_column, value_column)
    if totals.empty:
        logger.info(f"No numeric {value_column} values to rank, using default visualization")
        return default_result(rows, category_hint=category_column)

    labels = [str(k) for k in totals.index]
    values = [float(v) for v in totals.values]
    top, top_value = labels[0], format_number(values[0])

    insights = [
        f"{label} has the {ordinal} {value_column} at {format_number(value)}."
        for ordinal, label, value in zip(ORDINALS, labels, values)
    ]
    return {
        "analysis": (
            f"I analyzed the {value_column} data by {category_column} and ranked them. "
            f"{top} has the highest {value_column} at {top_value}."
        ),
        "visualization": {
            "type": "bar",
            "title": f"{value_column} by {category_column}",
            "description": f"This chart shows the total {value_column} for each {category_column}, ranked in descending order.",
            "xLabel": category_column,
            "yLabel": value_column,
            "data": {
                "labels": labels,
                "datasets": [_bar_dataset(value_column, values, _highlight_first(len(values)))],
            },
        },
        "insights": insights,
        "statistics": summarize(values),
    }


def sales_by_place(rows: List[Dict[str, Any]], place_column: str, sales_column: str,
                   place: str = "city") -> Dict[str, Any]:
    """
    Total sales per city or region, highest first.

    ``place`` is "city" or "region" and only affects titles and wording.
    """
    totals = group_totals(rows, place_column, sales_column)
    if totals.empty:
        return default_result(rows, category_hint=place_column)

    plural = "cities" if place == "city" else f"{place}s"
    labels = [str(k) for k in totals.index]
    values = [float(v) for v in totals.values]
    top, top_value = labels[0], format_number(values[0])
    gap = format_number(values[0] - values[1]) if len(values) > 1 else "N/A"

    return {
        "analysis": f"The {place} with the highest sales is **{top}** with total sales of **{top_value}**.",
        "visualization": {
            "type": "bar",
            "title": f"Sales by {place.title()}",
            "description": f"Comparison of total sales across {plural}",
            "xLabel": place.title(),
            "yLabel": "Total Sales",
            "data": {
                "labels": labels,
                "datasets": [_bar_dataset("Total Sales", values, _highlight_first(len(values)))],
            },
        },
        "insights": [
            f"{top} has the highest total sales at {top_value}.",
            f"The difference between the highest and second highest {place} is {gap}.",
            f"There are {len(labels)} {plural} in total.",
        ],
        "statistics": summarize(values),
    }


def distribution(rows: List[Dict[str, Any]], column: str) -> Dict[str, Any]:
    """Frequency of every value in ``column``; the chart keeps the top 15."""
    counts = value_frequencies(rows, column)
    if counts.empty:
        return default_result(rows, category_hint=column)

    total = int(counts.sum())
    top = counts.iloc[:DISTRIBUTION_TOP]
    labels = [str(k) for k in top.index]
    values = [int(v) for v in top.values]

    insights = [
        f'The most common {column} is "{labels[0]}" which appears {values[0]} times '
        f'({values[0] / total * 100:.1f}% of total).'
    ]
    if len(labels) > 1:
        insights.append(
            f'The second most common {column} is "{labels[1]}" which appears {values[1]} times '
            f'({values[1] / total * 100:.1f}% of total).'
        )
    insights.append(f"There are {len(counts)} unique values in the {column} column.")

    return {
        "analysis": (
            f"I analyzed the distribution of {column} values in the dataset. "
            f'The most common value is "{labels[0]}" which appears {values[0]} times.'
        ),
        "visualization": {
            "type": "bar",
            "title": f"Distribution of {column}",
            "description": f"This chart shows the frequency of each {column} value in the dataset.",
            "xLabel": column,
            "yLabel": "Count",
            "data": {
                "labels": labels,
                "datasets": [_bar_dataset("Count", values, palette(len(values)))],
            },
        },
        "insights": insights,
        "statistics": {
            "count": total,
            "uniqueValues": len(counts),
            "mostCommon": labels[0],
            "mostCommonCount": values[0],
            "leastCommon": str(counts.index[-1]),
            "leastCommonCount": int(counts.iloc[-1]),
        },
    }


def _points(rows: List[Dict[str, Any]], x_column: str, y_column: str,
            blank_as_zero: bool = False) -> pd.DataFrame:
    frame = pd.DataFrame({
        "x": coerce_series(_column_values(rows, x_column), blank_as_zero=blank_as_zero),
        "y": coerce_series(_column_values(rows, y_column), blank_as_zero=blank_as_zero),
    })
    return frame.dropna()


def correlation(rows: List[Dict[str, Any]], x_column: str, y_column: str) -> Dict[str, Any]:
    """Pearson correlation and scatter plot of two numeric columns."""
    points = _points(rows, x_column, y_column)
    n = len(points)
    r = pearson(points["x"].tolist(), points["y"].tolist())

    insights = []
    if not math.isnan(r):
        strength = "weak" if abs(r) < 0.3 else "moderate" if abs(r) < 0.7 else "strong"
        insights.append(f"There is a {strength} correlation ({r:.2f}) between {x_column} and {y_column}.")
        if r > 0:
            insights.append(f"As {x_column} increases, {y_column} tends to increase as well.")
        elif r < 0:
            insights.append(f"As {x_column} increases, {y_column} tends to decrease.")
    insights.append(f"The analysis is based on {n} data points with valid numeric values.")

    def _agg(series: pd.Series, how: str) -> float:
        return float(getattr(series, how)()) if n else math.nan

    return {
        "analysis": (
            f"I analyzed the relationship between {x_column} and {y_column}. "
            f"The correlation coefficient is {_fixed(r)}."
        ),
        "visualization": {
            "type": "scatter",
            "title": f"Correlation between {x_column} and {y_column}",
            "description": f"This scatter plot shows the relationship between {x_column} and {y_column}.",
            "xLabel": x_column,
            "yLabel": y_column,
            "data": {
                "datasets": [{
                    "label": f"{x_column} vs {y_column}",
                    "data": points.to_dict("records"),
                    "backgroundColor": BASE_COLOR,
                    "borderColor": border_for(BASE_COLOR),
                }],
            },
        },
        "insights": insights,
        "statistics": {
            "correlation": r,
            "pointCount": n,
            "xMean": _agg(points["x"], "mean"),
            "yMean": _agg(points["y"], "mean"),
            "xMin": _agg(points["x"], "min"),
            "xMax": _agg(points["x"], "max"),
            "yMin": _agg(points["y"], "min"),
            "yMax": _agg(points["y"], "max"),
        },
    }


def _no_data_visualization() -> Dict[str, Any]:
    return {
        "type": "bar",
        "title": "No Data Available",
        "description": "No data to visualize",
        "xLabel": "Category",
        "yLabel": "Value",
        "data": {
            "labels": ["No Data"],
            "datasets": [_bar_dataset("No Data", [0], BASE_COLOR)],
        },
    }


def pick_category_column(rows: List[Dict[str, Any]], category_hint: Optional[str] = None) -> Optional[str]:
    columns = _columns(rows)
    if category_hint and category_hint in columns:
        return category_hint
    for column in columns:
        if keywords.contains_any(column.lower(), keywords.DEFAULT_CATEGORY_HINTS):
            return column
    return columns[0] if columns else None


def build_default_visualization(rows: List[Dict[str, Any]], category_hint: Optional[str] = None,
                                top: int = DEFAULT_TOP) -> Dict[str, Any]:
    """
    Frequency bar chart over the most plausible category column.

    Every fallback path ends here when nothing better resolves.
    """
    category = pick_category_column(rows, category_hint)
    if category is None:
        return _no_data_visualization()

    counts = value_frequencies(rows, category).iloc[:top]
    return {
        "type": "bar",
        "title": f"Frequency of {category}",
        "description": f"Distribution of {category} values",
        "xLabel": category,
        "yLabel": "Count",
        "data": {
            "labels": [str(k) for k in counts.index],
            "datasets": [_bar_dataset("Count", [int(v) for v in counts.values], BASE_COLOR)],
        },
    }


def default_result(rows: List[Dict[str, Any]], category_hint: Optional[str] = None,
                   query: Optional[str] = None) -> Dict[str, Any]:
    """Complete result built around the default visualization."""
    visualization = build_default_visualization(rows, category_hint)
    analysis = f"Analysis of {len(rows)} rows of data"
    if query:
        analysis += f' based on your query: "{query}"'

    insights = []
    if rows:
        insights.append(f"The dataset contains {len(rows)} rows and {len(_columns(rows))} columns.")
        labels = visualization["data"]["labels"]
        counts = visualization["data"]["datasets"][0]["data"]
        if labels:
            insights.append(
                f'The most common value in {visualization["xLabel"]} is "{labels[0]}" with {counts[0]} occurrences.'
            )

    return {
        "analysis": analysis,
        "visualization": visualization,
        "insights": insights,
        "statistics": {"count": len(rows)},
    }


def split_columns(rows: List[Dict[str, Any]]):
    """(numeric columns, categorical columns) judged on the first rows."""
    numeric, categorical = [], []
    head = rows[:CHART_TYPE_SAMPLE_ROWS]
    for column in _columns(rows):
        if intents.is_mostly_numeric(head, column):
            numeric.append(column)
        else:
            categorical.append(column)
    return numeric, categorical


def correlation_matrix(rows: List[Dict[str, Any]], columns: List[str]) -> List[List[float]]:
    """Pairwise Pearson coefficients rounded to two decimals, 0.0 when undefined."""
    matrix = []
    for i, left in enumerate(columns):
        line = []
        for j, right in enumerate(columns):
            if i == j:
                line.append(1.0)
                continue
            points = _points(rows, left, right)
            r = pearson(points["x"].tolist(), points["y"].tolist())
            line.append(0.0 if math.isnan(r) else round(r, 2))
        matrix.append(line)
    return matrix


def build_chart_for_type(rows: List[Dict[str, Any]], chart_type: str) -> Dict[str, Any]:
    """
    Visualization of a requested chart type from the first plausible columns.

    Title and description are left to the caller.
    """
    if not rows:
        visualization = _no_data_visualization()
        visualization["type"] = chart_type
        return visualization

    columns = _columns(rows)
    numeric, categorical = split_columns(rows)
    label_column = categorical[0] if categorical else columns[0]
    value_column = numeric[0] if numeric else (columns[1] if len(columns) > 1 else columns[0])

    if chart_type == "line":
        frame = pd.DataFrame({
            "label": [to_label(v) for v in _column_values(rows, label_column)],
            "value": coerce_series(_column_values(rows, value_column), blank_as_zero=True),
        }).dropna()
        averages = frame.groupby("label")["value"].mean().sort_index().iloc[:DEFAULT_TOP]
        return {
            "type": "line",
            "xLabel": label_column,
            "yLabel": value_column,
            "data": {
                "labels": [str(k) for k in averages.index],
                "datasets": [{
                    "label": value_column,
                    "data": [float(v) for v in averages.values],
                    "backgroundColor": "rgba(75, 192, 192, 0.2)",
                    "borderColor": border_for(BASE_COLOR),
                    "tension": 0.1,
                }],
            },
        }

    if chart_type == "pie":
        counts = value_frequencies(rows, label_column).iloc[:PIE_TOP]
        return {
            "type": "pie",
            "data": {
                "labels": [str(k) for k in counts.index],
                "datasets": [{
                    "label": label_column,
                    "data": [int(v) for v in counts.values],
                    "backgroundColor": palette(len(counts)),
                }],
            },
        }

    if chart_type == "scatter":
        x_column = numeric[0] if numeric else columns[0]
        if len(numeric) > 1:
            y_column = numeric[1]
        elif numeric:
            y_column = numeric[0]
        else:
            y_column = columns[1] if len(columns) > 1 else columns[0]
        points = _points(rows[:SCATTER_ROWS], x_column, y_column, blank_as_zero=True)
        return {
            "type": "scatter",
            "xLabel": x_column,
            "yLabel": y_column,
            "data": {
                "datasets": [{
                    "label": f"{x_column} vs {y_column}",
                    "data": points.to_dict("records"),
                    "backgroundColor": BASE_COLOR,
                }],
            },
        }

    if chart_type == "boxplot":
        box_column = numeric[0] if numeric else columns[0]
        values = sorted(coerce_series(_column_values(rows, box_column), blank_as_zero=True).dropna().tolist())
        values = values or [0.0]
        return {
            "type": "boxplot",
            "xLabel": "",
            "yLabel": box_column,
            "data": {
                "boxplotData": {
                    "min": values[0],
                    "max": values[-1],
                    "median": floor_quantile(values, 0.5),
                    "q1": floor_quantile(values, 0.25),
                    "q3": floor_quantile(values, 0.75),
                    "outliers": [],
                },
            },
        }

    if chart_type == "heatmap":
        heat_columns = numeric[:HEATMAP_COLUMNS] if len(numeric) > 1 else columns[:HEATMAP_COLUMNS]
        return {
            "type": "heatmap",
            "data": {
                "matrix": correlation_matrix(rows, heat_columns),
                "rowLabels": heat_columns,
                "colLabels": heat_columns,
            },
        }

    return build_default_visualization(rows, category_hint=label_column)


def analyze(query_intent: intents.QueryIntent, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Run the analysis a classified intent asks for.

    Unmatched intents produce the default frequency result.
    """
    kind = query_intent.kind
    logger.info(f"Direct analysis: {kind}", extra={"intent": kind, "row_count": len(rows)})

    if kind == intents.CITY_SALES:
        return sales_by_place(rows, query_intent.category_column, query_intent.value_column, place="city")
    if kind == intents.REGION_SALES:
        return sales_by_place(rows, query_intent.category_column, query_intent.value_column, place="region")
    if kind == intents.RANKING:
        return rank_by_category(rows, query_intent.category_column, query_intent.value_column)
    if kind == intents.DISTRIBUTION:
        return distribution(rows, query_intent.target_column)
    if kind == intents.CORRELATION:
        return correlation(rows, query_intent.x_column, query_intent.y_column)
    return default_result(rows)
