"""Per-request logging for the metadata API."""

import time
import uuid
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from catalog_server.logging_config import get_logger

REQUEST_ID_HEADER = "X-Request-Id"

logger = get_logger(name="http")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs its outcome.

    The id is taken from ``X-Request-Id`` when the client sends one and is
    echoed back on the response. Rejected metadata queries (4xx) log at
    WARNING, server-side failures (5xx) at ERROR.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        log = logger.bind(request_id=request_id)
        started = time.perf_counter()

        with logger.contextualize(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception:
                log.exception(
                    "[{request_id}] {method} {path} -> unhandled error ({duration:.2f} ms)",
                    request_id=request_id,
                    method=request.method,
                    path=request.url.path,
                    duration=(time.perf_counter() - started) * 1000,
                )
                raise

        status = response.status_code
        level = "ERROR" if status >= 500 else "WARNING" if status >= 400 else "INFO"
        log.log(
            level,
            "[{request_id}] {method} {path} -> {status} ({duration:.2f} ms)",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=status,
            duration=(time.perf_counter() - started) * 1000,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
