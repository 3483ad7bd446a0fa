"""
Response normalization.

Turns whatever the model returned into a complete
``{analysis, visualization, insights, statistics}`` result. Parse failures
never reach the caller: they advance the cascade until the direct analysis
engine or the default visualization produces an answer, and the back-fill
pass guarantees every field the client renders is present.
"""
import logging
import math
import re
from numbers import Number
from typing import Any, Dict, List, Optional

from datachat.core.performance import track_performance
from datachat.services import analysis
from datachat.services import intent as intents
from datachat.services import keywords
from datachat.services.extraction import parse_model_json
from datachat.services.profiler import build_column_name_map

logger = logging.getLogger(__name__)

SUPPORTED_TYPES = ("bar", "line", "pie", "scatter", "boxplot", "heatmap")
TYPE_ALIASES = {"doughnut": "pie", "histogram": "bar", "area": "line"}
SERIES_TYPES = ("bar", "line", "pie", "scatter")

DEFAULT_ANALYSIS = "I analyzed your data but couldn't format the results properly."
DEFAULT_TITLE = "Data Visualization"
MAX_INSIGHTS = 5


def extract_insights(text: str) -> List[str]:
    """
    Mine short finding-like paragraphs and sentences from prose.

    Paragraphs of 21-199 characters are taken as they are; sentences of
    21-149 characters qualify when they use an analytical verb.
    """
    if not text:
        return []

    candidates = []
    for paragraph in re.split(r"\n\n+", text):
        trimmed = paragraph.strip()
        if 20 < len(trimmed) < 200:
            candidates.append(trimmed)

    for sentence in re.split(r"[.!?]+", text):
        trimmed = sentence.strip()
        if 20 < len(trimmed) < 150 and keywords.contains_any(trimmed, keywords.INSIGHT_VERBS):
            candidates.append(trimmed)

    return list(dict.fromkeys(candidates))[:MAX_INSIGHTS]


def from_prose(text: str, rows: List[Dict[str, Any]], column_name_map: Dict[str, str],
               query: Optional[str] = None) -> Dict[str, Any]:
    """
    Build a result from narrative text.

    Column names and intent words in the prose drive a direct analysis when
    they resolve; otherwise the chart type is guessed from the wording.
    """
    text = text or ""
    detected = intents.classify(text, column_name_map, rows)
    if detected.matched:
        logger.info(f"Prose resolved to {detected.kind} analysis", extra={"intent": detected.kind})
        return analysis.analyze(detected, rows)

    chart_type = intents.infer_chart_type(text)
    visualization = analysis.build_chart_for_type(rows, chart_type)
    visualization["title"] = f"Analysis of {query}" if query else DEFAULT_TITLE
    visualization["description"] = "Visualization based on your query"
    logger.info(f"Prose without a known intent, synthesized {chart_type} chart")

    return {
        "analysis": text.strip() or DEFAULT_ANALYSIS,
        "visualization": visualization,
        "insights": extract_insights(text),
        "statistics": {"count": len(rows)},
    }


def _needs_delegation(parsed: Dict[str, Any]) -> bool:
    visualization = parsed.get("visualization")
    if not isinstance(visualization, dict):
        return True
    text = parsed.get("analysis")
    if isinstance(text, str) and intents.is_descriptive_text(text):
        data = visualization.get("data")
        return not data or (isinstance(data, dict) and not any(data.values()))
    return False


def _is_valid_count(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, Number):
        return False
    try:
        return math.isfinite(value) and value != 0
    except OverflowError:
        # Integers beyond float range
        return False


def _chart_type(value: Any) -> str:
    chart_type = value.strip().lower() if isinstance(value, str) else ""
    if chart_type in SUPPORTED_TYPES:
        return chart_type
    return TYPE_ALIASES.get(chart_type, "bar")


def _fill_colors(dataset: Dict[str, Any], index: int, chart_type: str, labels: List[Any]):
    background = dataset.get("backgroundColor")
    if chart_type == "pie":
        if not isinstance(background, list) or len(background) != len(labels):
            dataset["backgroundColor"] = analysis.palette(len(labels), analysis.EXTENDED_COLORS)
            border = dataset.get("borderColor")
            if isinstance(border, list) and len(border) != len(labels):
                dataset.pop("borderColor")
    elif not background:
        dataset["backgroundColor"] = analysis.EXTENDED_COLORS[index % len(analysis.EXTENDED_COLORS)]

    if not dataset.get("borderColor"):
        dataset["borderColor"] = analysis.border_for(dataset["backgroundColor"])


def backfill_visualization(visualization: Any, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(visualization, dict):
        logger.info("No usable visualization, using default frequency chart")
        return analysis.build_default_visualization(rows)

    chart_type = _chart_type(visualization.get("type"))
    visualization["type"] = chart_type
    if not isinstance(visualization.get("title"), str) or not visualization["title"].strip():
        visualization["title"] = DEFAULT_TITLE
    if not isinstance(visualization.get("description"), str):
        visualization["description"] = ""

    data = visualization.get("data")
    if not isinstance(data, dict):
        data = visualization["data"] = {"labels": [], "datasets": []}

    if chart_type in SERIES_TYPES:
        if chart_type != "scatter" and not isinstance(data.get("labels"), list):
            data["labels"] = []
        if not isinstance(data.get("datasets"), list):
            data["datasets"] = []

    datasets = data.get("datasets")
    if isinstance(datasets, list):
        data["datasets"] = [d for d in datasets if isinstance(d, dict)]
        labels = data.get("labels") if isinstance(data.get("labels"), list) else []
        for index, dataset in enumerate(data["datasets"]):
            _fill_colors(dataset, index, chart_type, labels)

    return visualization


def backfill(result: Any, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Guarantee the result shape the client renders.

    Only missing or malformed fields are touched, so applying it to an
    already complete result changes nothing.
    """
    if not isinstance(result, dict):
        result = {}

    if not isinstance(result.get("analysis"), str) or not result["analysis"].strip():
        result["analysis"] = DEFAULT_ANALYSIS

    insights = result.get("insights")
    if isinstance(insights, str):
        insights = [insights]
    if not isinstance(insights, list):
        insights = []
    result["insights"] = [i if isinstance(i, str) else str(i) for i in insights if i is not None]

    statistics = result.get("statistics")
    if not isinstance(statistics, dict):
        statistics = result["statistics"] = {}
    if not _is_valid_count(statistics.get("count")):
        statistics["count"] = len(rows)

    result["visualization"] = backfill_visualization(result.get("visualization"), rows)
    return result


def _normalize(raw: Optional[str], rows: List[Dict[str, Any]], column_name_map: Dict[str, str],
               query: Optional[str]) -> Dict[str, Any]:
    parsed, stage = parse_model_json(raw)

    if parsed is None:
        logger.info("Model output is not JSON, analysing it as prose")
        return from_prose(raw or "", rows, column_name_map, query)

    if _needs_delegation(parsed):
        text = parsed.get("analysis")
        text = text if isinstance(text, str) and text.strip() else (raw or "")
        logger.info(f"Parsed ({stage}) result has no usable visualization, delegating")
        return from_prose(text, rows, column_name_map, query)

    logger.info(f"Model output accepted from stage '{stage}'")
    return parsed


@track_performance("normalize_response")
def normalize(raw: Optional[str], rows: List[Dict[str, Any]],
              column_name_map: Optional[Dict[str, str]] = None,
              query: Optional[str] = None) -> Dict[str, Any]:
    """
    Convert raw model output into a complete analysis result.

    Args:
        raw: Text returned by the model, possibly empty or malformed
        rows: Full dataset
        column_name_map: Lower-cased name -> actual column name
        query: User question, used for titles of synthesized charts

    Returns:
        Result dict; never raises
    """
    column_name_map = column_name_map or build_column_name_map(list(rows[0]) if rows else [])
    try:
        return backfill(_normalize(raw, rows, column_name_map, query), rows)
    except Exception:
        logger.exception("Normalization failed unexpectedly, returning default result")
        return backfill(analysis.default_result(rows, query=query), rows)

