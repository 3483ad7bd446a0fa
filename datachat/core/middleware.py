"""
Request middlewares: correlation ids, request timing and request timeouts.
"""
import uuid
import time
import asyncio
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from fastapi import status
from fastapi.responses import JSONResponse
from datachat.core.errors import ErrorCodes, get_error_response
from datachat.core.logging import correlation_id_var
from datachat.core.performance import PerformanceMonitor

logger = logging.getLogger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Attach a correlation id to the request, its log records and its response."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        token = correlation_id_var.set(correlation_id)
        try:
            return await self._dispatch(request, call_next, correlation_id)
        finally:
            correlation_id_var.reset(token)

    async def _dispatch(self, request: Request, call_next, correlation_id: str):
        start_time = time.perf_counter()
        logger.info(
            f"{request.method} {request.url.path} started",
            extra={"method": request.method, "path": request.url.path}
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                f"{request.method} {request.url.path} failed after {duration:.3f}s: {e}",
                extra={"method": request.method, "path": request.url.path, "duration": duration},
                exc_info=True
            )
            content = get_error_response(ErrorCodes.UNKNOWN_ERROR)
            content["correlation_id"] = correlation_id
            error_response = JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=content
            )
            error_response.headers["X-Correlation-ID"] = correlation_id
            return error_response

        duration = time.perf_counter() - start_time
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Response-Time"] = f"{duration:.3f}"

        PerformanceMonitor.record_metric(
            "request_duration",
            duration,
            {
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code
            }
        )
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({duration:.3f}s)",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": round(duration * 1000, 1)
            }
        )
        return response


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Abort requests that run longer than the configured budget with a 504."""

    def __init__(self, app, timeout_seconds: float):
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, request: Request, call_next):
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            correlation_id = getattr(request.state, "correlation_id", None)
            logger.warning(
                f"{request.method} {request.url.path} exceeded {self.timeout_seconds}s",
                extra={"path": request.url.path, "timeout_seconds": self.timeout_seconds}
            )
            content = get_error_response(ErrorCodes.TIMEOUT)
            if correlation_id:
                content["correlation_id"] = correlation_id
            return JSONResponse(status_code=status.HTTP_504_GATEWAY_TIMEOUT, content=content)
