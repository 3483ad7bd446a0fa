import logging
import math
from typing import Any

import numpy as np
from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from datachat.core.config import get_settings
from datachat.core.errors import AnalysisError, ErrorCodes, get_error_response
from datachat.core.rate_limit import limiter, rate_limit
from datachat.core.sanitization import sanitize_filename, sanitize_for_logging
from datachat.core.schemas import AnalyzeRequest, ApiKeyTestRequest, LLMConfig, UploadResult
from datachat.services import llm, parser, profiler
from datachat.services.analyzer import analyze_query

logger = logging.getLogger(__name__)

router = APIRouter()


def _correlation_id(request: Request) -> str:
    return getattr(request.state, 'correlation_id', 'unknown')


def _to_http(error: AnalysisError, request: Request) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_response(_correlation_id(request)))


def json_safe(value: Any) -> Any:
    """Replace NaN and infinities with None and unwrap numpy scalars."""
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


@router.get("/health")
async def health_check():
    return {"status": "ok"}


@router.post("/analyze")
@limiter.limit(rate_limit)
async def analyze(request: Request, payload: AnalyzeRequest):
    """
    Answer a question about the rows the client sends along.

    The key and model come with every request and are never stored.
    """
    config = LLMConfig(
        model=payload.model or get_settings().groq_model,
        credential=payload.api_key
    )
    try:
        result = await run_in_threadpool(
            analyze_query, payload.query, payload.data, config, payload.column_name_map
        )
    except AnalysisError as e:
        logger.warning(f"Analysis rejected: {e.code}", extra={"error_code": e.code})
        raise _to_http(e, request) from e

    return json_safe(result)


@router.post("/test-api-key")
@limiter.limit(rate_limit)
async def verify_api_key(request: Request, payload: ApiKeyTestRequest):
    """Check a key against the provider without running an analysis."""
    try:
        result = await run_in_threadpool(llm.test_api_key, payload.api_key)
    except AnalysisError as e:
        raise _to_http(e, request) from e

    if not result["valid"]:
        error_info = get_error_response(ErrorCodes.INVALID_API_KEY, result["error"])
        error_info['correlation_id'] = _correlation_id(request)
        error_info['valid'] = False
        raise HTTPException(status_code=401, detail=error_info)
    return result


@router.post("/upload", response_model=UploadResult)
@limiter.limit(rate_limit)
async def upload_file(request: Request, file: UploadFile = File(...)):
    """
    Parse a CSV or Excel file into rows the client keeps for later questions.
    """
    safe_filename = sanitize_filename(file.filename)
    logger.info(f"Processing file: {sanitize_for_logging(safe_filename)}")

    try:
        rows, columns = await parser.parse_upload(file)
    except AnalysisError as e:
        raise _to_http(e, request) from e

    profile = await run_in_threadpool(profiler.profile, rows)
    return json_safe({
        "filename": safe_filename,
        "row_count": len(rows),
        "columns": columns,
        "column_name_map": profile.column_name_map,
        "profile": profile.model_dump(),
        "data": rows,
    })
