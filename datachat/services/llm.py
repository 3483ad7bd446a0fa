"""
LLM access through Groq chat completions.

One client is built per request from the caller's own API key; nothing about
the credential is kept between requests. Only two kinds of failure leave
this module: invalid input (the key) and upstream errors from the provider.
"""
import json
import logging
import math
from typing import Any, Dict, List, Optional

import pandas as pd
from groq import Groq, APIConnectionError, APIStatusError

from datachat.core.config import get_settings
from datachat.core.errors import ErrorCodes, InvalidInputError, UpstreamServiceError
from datachat.core.performance import track_performance
from datachat.core.sanitization import mask_credential, sanitize_for_logging
from datachat.core.schemas import DataProfile, LLMConfig

logger = logging.getLogger(__name__)

PREVIEW_ROWS = 10
SAMPLE_EDGE_ROWS = 250


def validate_api_key(api_key: Optional[str]) -> Dict[str, Any]:
    """
    Check the format of an API key without calling the provider.

    Returns:
        {"valid": True} or {"valid": False, "error": reason}
    """
    settings = get_settings()
    if not api_key or not api_key.strip():
        return {"valid": False, "error": "API key cannot be empty"}

    key = api_key.strip()
    if not key.startswith(settings.api_key_prefix):
        return {"valid": False, "error": f"API key must start with '{settings.api_key_prefix}'"}
    if len(key) < settings.api_key_min_length:
        return {"valid": False, "error": "API key is too short"}
    return {"valid": True}


def require_api_key(api_key: Optional[str]) -> str:
    """Return the trimmed key or raise InvalidInputError."""
    if not api_key or not api_key.strip():
        raise InvalidInputError(ErrorCodes.MISSING_API_KEY)
    validation = validate_api_key(api_key)
    if not validation["valid"]:
        raise InvalidInputError(ErrorCodes.INVALID_API_KEY, validation["error"])
    return api_key.strip()


def create_representative_sample(rows: List[Dict[str, Any]], size: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Bound prompt size for large datasets.

    Keeps the first and last 250 rows plus an evenly strided middle section,
    ``size`` rows in total. Smaller datasets are returned unchanged.
    """
    size = size or get_settings().representative_sample_size
    n = len(rows)
    if n <= size:
        return rows

    edge = SAMPLE_EDGE_ROWS
    middle_size = size - 2 * edge
    step = (n - 2 * edge) / middle_size
    sample = list(rows[:edge])
    for i in range(middle_size):
        index = math.floor(edge + i * step)
        if index < n - edge:
            sample.append(rows[index])
    sample.extend(rows[n - edge:])

    logger.info(f"Created representative sample of {len(sample)} rows from {n} total rows")
    return sample


def prompt_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Rows embedded in the prompt: everything for small datasets, a sample otherwise."""
    if len(rows) <= get_settings().full_dataset_prompt_rows:
        return rows
    return create_representative_sample(rows)


def _stat(stats: Dict[str, Any], key: str) -> Any:
    value = stats.get(key)
    return "N/A" if value is None else value


def describe_columns(profile: DataProfile) -> str:
    lines = []
    for column, column_type in profile.column_types.items():
        stats = profile.column_stats.get(column, {})
        line = f"{column} ({column_type})"
        if "numeric" in column_type:
            line += f" - range: {_stat(stats, 'min')} to {_stat(stats, 'max')}, avg: {_stat(stats, 'mean')}"
        elif "categorical" in column_type:
            line += f" - {_stat(stats, 'uniqueCount')} unique values"
        lines.append(line)
    return "\n".join(lines)


def build_system_prompt(rows: List[Dict[str, Any]], profile: DataProfile) -> str:
    """
    Instructions, dataset description and the dataset itself as CSV.
    """
    n = len(rows)
    columns = ", ".join(str(c) for c in (rows[0].keys() if rows else []))
    included = prompt_rows(rows)
    scope = "all rows" if len(included) == n else f"a representative sample of {len(included)} rows"
    preview = json.dumps(rows[:PREVIEW_ROWS], indent=2, default=str)
    dataset_csv = pd.DataFrame(included).to_csv(index=False)

    return f"""
RESPOND WITH ONE VALID JSON OBJECT ONLY. No text before or after it.

Analyze the COMPLETE dataset of {n} rows, not just the preview below.

Dataset:
- {n} rows in total ({scope} included below as CSV)
- Columns: {columns}

Columns in detail:
{describe_columns(profile)}

First rows:
{preview}

Requirements:
1. Compute rankings, frequencies, trends and correlations over all {n} rows
2. Pick the chart type that best answers the question
3. Give specific, data-driven insights with the actual numbers
4. Label axes and give the chart a clear title

Response schema:
{{
  "analysis": "Narrative answer based on all {n} rows",
  "visualization": {{
    "type": "bar|line|pie|scatter|boxplot|heatmap",
    "title": "What the chart shows",
    "description": "How to read it",
    "xLabel": "X-axis label",
    "yLabel": "Y-axis label",
    "data": {{
      "labels": ["Label1", "Label2"],
      "datasets": [
        {{
          "label": "Series name",
          "data": [1, 2],
          "backgroundColor": ["color1", "color2"],
          "borderColor": ["color1", "color2"]
        }}
      ]
    }}
  }},
  "insights": ["Insight 1", "Insight 2", "Insight 3"],
  "statistics": {{
    "mean": 0,
    "median": 0,
    "standardDeviation": 0,
    "min": 0,
    "max": 0,
    "count": {n},
    "quartile1": 0,
    "quartile3": 0
  }}
}}

Dataset (CSV):
{dataset_csv}
"""


def _provider_message(error: APIStatusError) -> str:
    body = error.body
    if isinstance(body, dict):
        detail = body.get("error", body)
        if isinstance(detail, dict) and detail.get("message"):
            return str(detail["message"])
    return error.message or f"HTTP {error.status_code}"


@track_performance("llm_completion")
def complete(system_prompt: str, query: str, config: LLMConfig) -> str:
    """
    One chat completion call.

    Returns:
        The reply text; an empty string when the provider sent no content

    Raises:
        UpstreamServiceError: provider returned an error or could not be reached
    """
    settings = get_settings()
    params: Dict[str, Any] = {
        "model": config.model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": f"Analyze this data and respond with JSON only: {query}"},
        ],
        "temperature": settings.llm_temperature,
        "max_tokens": settings.llm_max_tokens,
        "timeout": settings.llm_timeout_seconds,
    }
    if config.model in settings.json_mode_models:
        params["response_format"] = {"type": "json_object"}

    logger.info(
        f"Calling model {config.model} with key {mask_credential(config.credential)}",
        extra={"model": config.model, "json_mode": "response_format" in params}
    )

    client = Groq(api_key=config.credential)
    try:
        response = client.chat.completions.create(**params)
    except APIStatusError as e:
        message = _provider_message(e)
        logger.error(f"Provider returned {e.status_code}: {sanitize_for_logging(message)}")
        raise UpstreamServiceError(ErrorCodes.UPSTREAM_ERROR, message) from e
    except APIConnectionError as e:
        logger.error(f"Provider unreachable: {type(e).__name__}")
        raise UpstreamServiceError(ErrorCodes.UPSTREAM_UNREACHABLE) from e

    if not response.choices:
        logger.warning("Provider returned no choices")
        return ""
    content = response.choices[0].message.content or ""
    logger.debug(f"Raw model output: {sanitize_for_logging(content, 200)}")
    return content


def test_api_key(api_key: Optional[str]) -> Dict[str, Any]:
    """
    Check a key's format, then ask the provider to list models with it.

    Returns:
        {"valid": True, "message": ...} or {"valid": False, "error": ...}
        when the provider rejects the key

    Raises:
        InvalidInputError: missing or malformed key
        UpstreamServiceError: provider could not be reached
    """
    key = require_api_key(api_key)
    try:
        Groq(api_key=key).models.list(timeout=get_settings().llm_timeout_seconds)
    except APIStatusError as e:
        message = _provider_message(e)
        logger.info(f"API key {mask_credential(key)} rejected: {sanitize_for_logging(message)}")
        return {"valid": False, "error": f"The provider rejected the API key: {message}"}
    except APIConnectionError as e:
        raise UpstreamServiceError(ErrorCodes.UPSTREAM_UNREACHABLE) from e

    logger.info(f"API key {mask_credential(key)} is valid")
    return {"valid": True, "message": "API key is valid"}
