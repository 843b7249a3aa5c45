"""
Correlation ID middleware for request tracing.

Generates a UUID4 correlation ID per request (or accepts X-Correlation-ID from client).
Stores it in contextvars so every log line written while serving the request carries it.
"""
import uuid
import time
import contextvars
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from careerhub.utils.logger import get_logger
from careerhub.utils import metrics

logger = get_logger("http")

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("correlation_id", default="")
# Filled in by the auth dependency once the bearer token is decoded
request_user_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_user_id", default="")

# Not worth a log line per hit
QUIET_PATHS = frozenset({"/health", "/metrics"})


def get_correlation_id() -> str:
    """Get the current request's correlation ID"""
    return correlation_id_var.get("")


def get_request_user_id() -> str:
    return request_user_id_var.get("")


class CorrelationMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with a correlation ID, logs its outcome and timing,
    and echoes the ID back in X-Correlation-ID.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("x-correlation-id") or str(uuid.uuid4())
        correlation_id_var.set(cid)
        request_user_id_var.set("")

        start = time.monotonic()
        method = request.method
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request.failed",
                extra={
                    "method": method,
                    "path": path,
                    "duration_ms": round((time.monotonic() - start) * 1000),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                }
            )
            metrics.inc("http.requests.error")
            raise

        duration_ms = round((time.monotonic() - start) * 1000)
        status = response.status_code
        metrics.inc(f"http.requests.{status // 100}xx")

        if path not in QUIET_PATHS:
            log_fn = logger.warning if status >= 500 else logger.info
            log_fn(
                "request.completed",
                extra={
                    "method": method,
                    "path": path,
                    "status": status,
                    "duration_ms": duration_ms,
                    "user_id": get_request_user_id(),
                }
            )

        response.headers["X-Correlation-ID"] = cid
        return response
