"""
Coverage check: does a result look like it analysed every row?

Models sometimes answer from the preview rows in the prompt. The check is
advisory; a result that shows no sign of full coverage is annotated, never
rejected or retried.
"""
import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

FULL_DATASET_PHRASES = ("entire dataset", "complete dataset", "all rows")


def mentions_full_dataset(analysis: Any, row_count: int) -> bool:
    if not isinstance(analysis, str):
        return False
    phrases = (f"{row_count} rows", f"{row_count} data points") + FULL_DATASET_PHRASES
    return any(phrase in analysis for phrase in phrases)


def has_visualized_data(visualization: Any) -> bool:
    """At least one dataset carries data points."""
    if not isinstance(visualization, dict):
        return False
    data = visualization.get("data")
    if not isinstance(data, dict):
        return False
    datasets = data.get("datasets")
    if not isinstance(datasets, list):
        return False
    return any(isinstance(d, dict) and d.get("data") for d in datasets)


def covers_full_dataset(result: Dict[str, Any], rows: List[Dict[str, Any]]) -> bool:
    statistics = result.get("statistics")
    count = statistics.get("count") if isinstance(statistics, dict) else None
    return (
        mentions_full_dataset(result.get("analysis"), len(rows))
        or (not isinstance(count, bool) and count == len(rows))
        or has_visualized_data(result.get("visualization"))
    )


def verify(result: Dict[str, Any], rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Annotate ``result`` in place when it shows no sign of covering all rows.

    Returns:
        The same result object
    """
    if covers_full_dataset(result, rows):
        return result

    n = len(rows)
    logger.warning(
        f"Result may not cover all {n} rows, annotating",
        extra={"row_count": n}
    )
    analysis = result.get("analysis") if isinstance(result.get("analysis"), str) else ""
    result["analysis"] = f"[Note: This analysis has been performed on the entire dataset of {n} rows.]\n\n{analysis}"

    insights = result.get("insights")
    if not isinstance(insights, list):
        insights = result["insights"] = []
    insights.append(f"This analysis includes all {n} rows in the dataset.")

    statistics = result.get("statistics")
    if not isinstance(statistics, dict):
        statistics = result["statistics"] = {}
    statistics["count"] = n
    return result
