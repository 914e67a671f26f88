"""
Error handling middleware with error message sanitization.

Lifecycle errors are rendered with their stable code and status; store
failures that escape a service are reported as retryable UNAVAILABLE.
Every error body has the shape
``{"error": {"code", "message", "path", "method", "retryable"}}``.
"""

import logging
import traceback
from typing import Any, Callable, Optional
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError
import re

from api.services.store import is_store_unavailable
from core.errors import LifecycleError, Unavailable

logger = logging.getLogger(__name__)

# Patterns for sensitive data that should never be echoed back
SENSITIVE_PATTERNS = [
    re.compile(r'password["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'token["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'api[_-]?key["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'secret["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'authorization["\s:]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'\b\d{3}-\d{2}-\d{4}\b'),  # SSN
    re.compile(r'\b\d{16}\b'),  # Credit card
]

HTTP_ERROR_CODES = {
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def sanitize_error_message(message: Any) -> str:
    """
    Remove sensitive information from error messages.

    Args:
        message: Original error message

    Returns:
        Sanitized error message
    """
    sanitized = str(message)
    for pattern in SENSITIVE_PATTERNS:
        sanitized = pattern.sub('[REDACTED]', sanitized)
    return sanitized


def error_response(
    status_code: int,
    code: str,
    message: str,
    path: str,
    method: str,
    retryable: bool = False,
    details: Optional[Any] = None,
    request_id: Optional[str] = None,
) -> JSONResponse:
    """Build the JSON error envelope."""
    body = {
        "code": code,
        "message": sanitize_error_message(message),
        "path": path,
        "method": method,
        "retryable": retryable,
    }
    if details is not None:
        body["details"] = details
    if request_id:
        body["request_id"] = request_id
    return JSONResponse(status_code=status_code, content={"error": body})


def format_validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Format validation errors into a user-friendly structure."""
    errors = []
    for error in exc.errors():
        error_dict = {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": sanitize_error_message(error["msg"]),
            "type": error["type"],
        }
        # Echo the input only for simple values that carry no secrets
        input_value = error.get("input")
        if isinstance(input_value, (str, int, float, bool)):
            input_str = str(input_value)
            if not any(pattern.search(input_str) for pattern in SENSITIVE_PATTERNS):
                error_dict["input"] = input_value
        errors.append(error_dict)
    return errors


def log_lifecycle_error(exc: LifecycleError, method: str, path: str) -> None:
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {method} {path} - {exc.message}")
    else:
        logger.warning(f"{exc.code}: {method} {path} - {exc.message}")


class ErrorHandlingMiddleware:
    """
    Outermost safety net: anything that escapes the routers and exception
    handlers is logged and turned into the standard error envelope.
    """

    def __init__(self, app: Callable, debug: bool = False):
        """
        Initialize error handling middleware.

        Args:
            app: The ASGI application
            debug: Whether to include tracebacks in responses
        """
        self.app = app
        self.debug = debug

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            response = self._handle_exception(exc, scope)
            await response(scope, receive, send)

    def _handle_exception(self, exc: Exception, scope: dict) -> Response:
        path = scope.get("path", "unknown")
        method = scope.get("method", "unknown")
        request_id = None
        for name, value in scope.get("headers", []):
            if name == b"x-request-id":
                request_id = value.decode()

        if isinstance(exc, LifecycleError):
            log_lifecycle_error(exc, method, path)
            return error_response(
                exc.status_code, exc.code, exc.message, path, method,
                retryable=exc.retryable, request_id=request_id,
            )

        if is_store_unavailable(exc):
            logger.error(f"Record store unavailable: {method} {path}", exc_info=True)
            unavailable = Unavailable()
            return error_response(
                unavailable.status_code, unavailable.code, unavailable.message,
                path, method, retryable=True, request_id=request_id,
            )

        details = None
        if self.debug:
            details = {
                "type": type(exc).__name__,
                "message": sanitize_error_message(str(exc)),
                "traceback": traceback.format_exc(),
            }
        logger.error(
            f"Unhandled exception: {method} {path} - "
            f"{type(exc).__name__}: {sanitize_error_message(str(exc))}",
            exc_info=True,
        )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_SERVER_ERROR",
            "An unexpected error occurred",
            path,
            method,
            details=details,
            request_id=request_id,
        )


def setup_error_handlers(app):
    """
    Set up exception handlers for FastAPI application.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(LifecycleError)
    async def lifecycle_exception_handler(request: Request, exc: LifecycleError):
        """Render lifecycle errors with their stable code."""
        log_lifecycle_error(exc, request.method, request.url.path)
        return error_response(
            exc.status_code,
            exc.code,
            exc.message,
            str(request.url.path),
            request.method,
            retryable=exc.retryable,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return error_response(
            exc.status_code,
            HTTP_ERROR_CODES.get(exc.status_code, "HTTP_EXCEPTION"),
            exc.detail,
            str(request.url.path),
            request.method,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors."""
        errors = format_validation_errors(exc)
        logger.warning(
            f"Validation error: {request.method} {request.url.path} - Errors: {errors}"
        )
        return error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "VALIDATION_ERROR",
            "Request validation failed",
            str(request.url.path),
            request.method,
            details=errors,
        )

    @app.exception_handler(SQLAlchemyError)
    async def store_exception_handler(request: Request, exc: SQLAlchemyError):
        """Store failures outside a unit of work, e.g. on read paths."""
        if is_store_unavailable(exc):
            logger.error(
                f"Record store unavailable: {request.method} {request.url.path}",
                exc_info=True,
            )
            unavailable = Unavailable()
            return error_response(
                unavailable.status_code,
                unavailable.code,
                unavailable.message,
                str(request.url.path),
                request.method,
                retryable=True,
            )
        logger.error(
            f"SQLAlchemy error: {request.method} {request.url.path}", exc_info=True
        )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "DATABASE_ERROR",
            "A database error occurred",
            str(request.url.path),
            request.method,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions."""
        logger.error(
            f"Unhandled exception: {request.method} {request.url.path} - "
            f"{type(exc).__name__}: {sanitize_error_message(str(exc))}",
            exc_info=True
        )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_SERVER_ERROR",
            "An unexpected error occurred",
            str(request.url.path),
            request.method,
        )
