"""Request context middleware for correlation and logging."""
import time
import uuid
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger

from src.trading_ops.core.logging import trace_id as trace_id_var
from src.trading_ops.monitoring.tracing import get_current_span, set_span_attributes, record_exception

CORRELATION_HEADER = "X-Correlation-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation id and log its outcome.

    The id is taken from ``X-Correlation-ID`` when the caller sends one,
    bound to every log line emitted while serving the request, and
    echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next):
        if getattr(request.app.state, "shutting_down", False):
            logger.warning(f"⚠️  Rejecting {request.method} {request.url.path} during shutdown")
            return JSONResponse(
                status_code=503,
                content={"detail": "Service is shutting down"},
            )

        start_time = time.time()
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        token = trace_id_var.set(correlation_id)
        request.state.correlation_id = correlation_id

        span = get_current_span()
        set_span_attributes(span, correlation_id=correlation_id)

        with logger.contextualize(correlation_id=correlation_id):
            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(f"❌ {request.method} {request.url.path} failed: {e}")
                record_exception(span, e)
                raise
            finally:
                trace_id_var.reset(token)

            latency_ms = round((time.time() - start_time) * 1000, 2)
            logger.info(
                f"{request.method} {request.url.path} → {response.status_code} ({latency_ms}ms)"
            )

        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers["X-Process-Time"] = f"{latency_ms / 1000:.4f}"
        return response
