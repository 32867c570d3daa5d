"""Request tracing and request/response logging middleware."""

import time
import uuid
from contextvars import ContextVar
from typing import Callable

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

_request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    """Return the request ID bound to the current context, if any."""
    return _request_id_ctx_var.get()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for request IDs and structured HTTP request/response logging.

    Reuses an incoming ``X-Request-ID`` header or generates one, binds it to
    every log line emitted while the request is processed and echoes it back
    on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = _request_id_ctx_var.set(request_id)
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger = structlog.get_logger(__name__).bind(method=request.method, path=request.url.path)
        start_time = time.time()
        logger.info("request.start")

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("request.error", error=str(exc), error_type=type(exc).__name__, exc_info=True)
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
            _request_id_ctx_var.reset(token)

        duration_ms = (time.time() - start_time) * 1000
        logger.info("request.end", status_code=response.status_code, duration_ms=round(duration_ms, 2))

        response.headers["X-Request-ID"] = request_id
        return response
