"""FastAPI middleware for request tracking, logging and security headers."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from imageshelter.utils.logging import clear_correlation_id, sanitize_text, set_correlation_id

logger = logging.getLogger(__name__)

# Context variable for request ID (thread-safe)
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

MAX_REQUEST_ID_LENGTH = 64


def get_request_id() -> str | None:
    """Get current request ID from context."""
    return request_id_var.get()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware that assigns a unique ID to each request.

    The request ID is:
    - Read from X-Request-ID header if present, generated as UUID4 otherwise
    - Stored in request.state.request_id
    - Added to response as X-Request-ID header
    - Used as correlation ID for logging
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", "")[:MAX_REQUEST_ID_LENGTH]
        if not request_id:
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        set_correlation_id(request_id[:16])

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            request_id_var.reset(token)
            clear_correlation_id()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs one line per request.

    Paths are sanitized before logging because retrieval URLs carry the
    decryption key. Request bodies are never logged.

    Args:
        app: ASGI application
        log_all: If True, log successful requests at INFO (otherwise DEBUG)
    """

    def __init__(self, app: ASGIApp, log_all: bool = False) -> None:
        super().__init__(app)
        self.log_all = log_all

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start_time = time.perf_counter()
        path = sanitize_text(request.url.path)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        extra: dict[str, object] = {
            "request_id": getattr(request.state, "request_id", None) or get_request_id(),
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
        }

        if response.status_code >= 500:
            level = logging.WARNING
        elif self.log_all:
            level = logging.INFO
        else:
            level = logging.DEBUG
        logger.log(
            level,
            f"{request.method} {path} -> {response.status_code} ({duration_ms:.1f} ms)",
            extra=extra,
        )

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware that adds security headers to all responses.

    Headers added:
    - X-Content-Type-Options: nosniff (served files are never MIME-sniffed)
    - X-Frame-Options: DENY (prevent clickjacking)
    - Referrer-Policy: no-referrer (retrieval URLs contain keys)
    - Content-Security-Policy: sandbox for served content
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        # Uploaded html/js must never run with this origin's privileges
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; img-src 'self'; media-src 'self'; sandbox"
        )

        return response
