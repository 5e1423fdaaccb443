"""
Request middleware — logging, timing, correlation IDs.

Provides:
    • X-Request-Id header echo / injection (correlation ID)
    • Request/response timing (X-Process-Time header)
    • Structured log entry per request
    • Request context for downstream log enrichment

A client-supplied X-Request-Id is echoed only when it is a short token of
``[A-Za-z0-9._-]``; anything else is replaced so log lines cannot be forged
through the header.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backend.app.core.logging_config import set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"
_REQUEST_ID_RE = re.compile(r"[A-Za-z0-9._-]{1,64}")


def new_request_id() -> str:
    return uuid.uuid4().hex[:16]


def resolve_request_id(candidate: Optional[str]) -> str:
    """Echo a well-formed client id, otherwise assign a fresh one."""
    if candidate and _REQUEST_ID_RE.fullmatch(candidate):
        return candidate
    return new_request_id()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every request with timing, inject correlation ID.

    Request log entry includes:
        - method, path, status_code
        - duration_ms
        - client IP
        - request_id (also returned in X-Request-Id response header)
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path

        request.state.request_id = request_id

        # Set context for downstream loggers
        set_request_context(
            request_id=request_id,
            client_ip=client_ip,
            endpoint=path,
            method=request.method,
        )

        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "%s %s → 500 (%.1fms) [%s]",
                request.method, path, duration_ms, client_ip,
                extra={
                    "request_id": request_id,
                    "duration_ms": duration_ms,
                    "status_code": 500,
                    "endpoint": path,
                },
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"

        # Skip docs/favicon spam
        if not any(path.startswith(p) for p in ("/docs", "/redoc", "/openapi", "/favicon")):
            log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                log_level,
                "%s %s → %d (%.1fms) [%s]",
                request.method, path, response.status_code,
                duration_ms, client_ip,
                extra={
                    "request_id": request_id,
                    "duration_ms": duration_ms,
                    "status_code": response.status_code,
                    "endpoint": path,
                },
            )

        set_request_context()

        return response
