"""Exception handlers rendering every error as ``{"code", "message"}``."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import TYPE_CHECKING

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from imageshelter.storage.errors import ErrorCode, StorageError

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


def _get_error_id(request: Request) -> str:
    """Get request ID for error tracking."""
    return getattr(request.state, "request_id", "unknown")


def error_response(
    code: ErrorCode | str,
    message: str,
    status_code: int,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the JSON error body shared by all handlers."""
    wire_code = code.value if isinstance(code, ErrorCode) else code
    return JSONResponse(
        status_code=status_code,
        content={"code": wire_code, "message": message},
        headers=headers,
    )


def is_multipart(request: Request) -> bool:
    """Check whether the request body is multipart/form-data."""
    content_type = request.headers.get("content-type", "")
    return content_type.lower().startswith("multipart/form-data")


async def storage_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render a domain error with its own code and status.

    Args:
        request: FastAPI request object
        exc: StorageError instance

    Returns:
        JSONResponse with ``code`` and ``message``
    """
    if not isinstance(exc, StorageError):
        return await general_exception_handler(request, exc)

    if exc.status_code >= 500:
        logger.error(
            f"{exc.code.value} on {request.method} {request.url.path} "
            f"(request_id={_get_error_id(request)}): {exc.message}"
        )
    else:
        logger.info(f"{exc.code.value} on {request.method} {request.url.path}: {exc.message}")

    return error_response(exc.code, exc.message, exc.status_code)


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render framework HTTP errors (unknown routes, bad methods, unparsable bodies).

    Args:
        request: FastAPI request object
        exc: HTTPException instance (FastAPI or Starlette)

    Returns:
        JSONResponse with ``code`` and ``message``
    """
    if not isinstance(exc, StarletteHTTPException):
        return await general_exception_handler(request, exc)

    logger.warning(
        f"HTTP {exc.status_code} error: {exc.detail} "
        f"(request_id={_get_error_id(request)}, path={request.url.path})"
    )

    if exc.status_code == status.HTTP_404_NOT_FOUND:
        code = ErrorCode.FILE_DOES_NOT_EXIST
        return error_response(code, "This file does not exist.", code.status_code)

    if exc.status_code == status.HTTP_400_BAD_REQUEST and not is_multipart(request):
        code = ErrorCode.NOT_FORM_DATA
        return error_response(code, "The request's type is not multipart/form-data.", 400)

    try:
        wire_code = HTTPStatus(exc.status_code).name
    except ValueError:
        wire_code = f"HTTP_{exc.status_code}"
    return error_response(wire_code, str(exc.detail), exc.status_code, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render request validation errors with the upload error codes.

    A form field of the wrong type (e.g. ``image`` sent as text) is reported
    as the corresponding missing-field code.

    Args:
        request: FastAPI request object
        exc: RequestValidationError instance

    Returns:
        JSONResponse with ``code`` and ``message``
    """
    if not isinstance(exc, RequestValidationError):
        return await general_exception_handler(request, exc)

    logger.warning(
        f"Validation error on {request.url.path}: {exc.errors()} "
        f"(request_id={_get_error_id(request)})"
    )

    fields = {str(part) for error in exc.errors() for part in error.get("loc", ())}
    if not is_multipart(request):
        code, message = ErrorCode.NOT_FORM_DATA, "The request's type is not multipart/form-data."
    elif "secret" in fields:
        code, message = ErrorCode.MISSING_SECRET, "Secret not provided."
    elif "image" in fields:
        code, message = ErrorCode.MISSING_IMAGE, "Image not provided."
    else:
        code, message = ErrorCode.NOT_FORM_DATA, "Invalid form data."

    return error_response(code, message, code.status_code)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all unhandled exceptions with an opaque error.

    Full details, including the stack trace, are logged server-side only.

    Args:
        request: FastAPI request object
        exc: Exception instance

    Returns:
        JSONResponse with ``UNEXPECTED_ERROR``
    """
    logger.exception(
        f"Unhandled exception in {request.method} {request.url.path} "
        f"(request_id={_get_error_id(request)}): {exc}"
    )

    debug_mode = getattr(request.app.state, "debug", False)

    message = f"Unexpected error: {type(exc).__name__}: {exc}" if debug_mode else "Unexpected error."
    return error_response(ErrorCode.UNEXPECTED_ERROR, message, status.HTTP_500_INTERNAL_SERVER_ERROR)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(StorageError, storage_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Catch-all for any unhandled exceptions
    app.add_exception_handler(Exception, general_exception_handler)

    logger.debug("Registered exception handlers")
