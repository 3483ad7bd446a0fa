"""
Entry point for answering a question about a dataset.

Validates input, profiles the data, answers the well-known "which city or
region has the highest sales" questions directly, and otherwise asks the
model and normalizes its reply. Every path ends in the back-fill and the
coverage check.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from datachat.core.errors import ErrorCodes, InvalidInputError
from datachat.core.sanitization import sanitize_for_logging, sanitize_for_prompt
from datachat.core.schemas import LLMConfig
from datachat.services import analysis, coverage, llm, normalizer, profiler
from datachat.services import intent as intents

logger = logging.getLogger(__name__)


def validate_request(query: Optional[str], rows: Optional[List[Dict[str, Any]]],
                     config: LLMConfig) -> Tuple[str, LLMConfig]:
    """Reject requests that cannot be analysed; returns the cleaned query and config."""
    cleaned = sanitize_for_prompt(query)
    if not cleaned:
        raise InvalidInputError(ErrorCodes.MISSING_QUERY)
    if not rows:
        raise InvalidInputError(ErrorCodes.EMPTY_DATASET)
    if not all(isinstance(row, dict) for row in rows):
        raise InvalidInputError(ErrorCodes.EMPTY_DATASET, "Every row must be an object of column values.")
    key = llm.require_api_key(config.credential)
    return cleaned, config.model_copy(update={"credential": key})


def analyze_query(query: str, rows: List[Dict[str, Any]], config: LLMConfig,
                  column_name_map: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Answer ``query`` about ``rows``.

    Args:
        query: The user's question
        rows: Full dataset, never modified
        config: Model name and the caller's API key
        column_name_map: Optional lower-cased name -> column map from the client

    Returns:
        Result dict with analysis, visualization, insights and statistics

    Raises:
        InvalidInputError: missing query, empty dataset or bad API key
        UpstreamServiceError: the model provider failed
    """
    query, config = validate_request(query, rows, config)
    logger.info(
        f"Analyzing {len(rows)} rows for query: {sanitize_for_logging(query, 200)}",
        extra={"row_count": len(rows), "model": config.model}
    )

    profile = profiler.profile(rows)
    column_map = column_name_map or profile.column_name_map

    archetype = intents.detect_sales_archetype(query, column_map, rows)
    if archetype:
        logger.info(f"Answering {archetype.kind} question directly")
        result = normalizer.backfill(analysis.analyze(archetype, rows), rows)
    else:
        system_prompt = llm.build_system_prompt(rows, profile)
        raw = llm.complete(system_prompt, query, config)
        result = normalizer.normalize(raw, rows, column_map, query=query)

    return coverage.verify(result, rows)
