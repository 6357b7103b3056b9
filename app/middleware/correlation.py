"""
Correlation ID middleware for request tracing.

Accepts X-Correlation-ID from the client (the dashboard forwards one per
user action) or generates a UUID4, stores it in a contextvar so cache and
generator logs can be tied back to the request, and echoes it in the
response headers.
"""
import uuid
import time
import contextvars
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from app.utils.logger import logger

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Correlation ID of the request being served, or '' outside a request"""
    return correlation_id_var.get("")


class CorrelationMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("x-correlation-id") or str(uuid.uuid4())
        token = correlation_id_var.set(cid)

        start = time.monotonic()
        context = {
            "correlation_id": cid,
            "method": request.method,
            "path": request.url.path,
            "user_id": request.headers.get("x-user-id", ""),
        }

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request.failed",
                extra={
                    **context,
                    "duration_ms": round((time.monotonic() - start) * 1000),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                }
            )
            raise
        finally:
            correlation_id_var.reset(token)

        status = response.status_code
        log_fn = logger.warning if status >= 400 else logger.info
        log_fn(
            "request.completed",
            extra={**context, "status": status, "duration_ms": round((time.monotonic() - start) * 1000)}
        )

        response.headers["X-Correlation-ID"] = cid
        return response
