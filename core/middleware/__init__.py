"""
Core middleware package.

This package provides the HTTP middleware components:
- Error handling with sensitive data sanitization
- Structured logging with PII masking
"""

from core.middleware.error_handling import (
    ErrorHandlingMiddleware,
    setup_error_handlers,
    sanitize_error_message,
)

from core.middleware.logging import (
    StructuredFormatter,
    StructuredLoggingMiddleware,
    setup_logging,
    get_logger,
)

__all__ = [
    # Error handling
    "ErrorHandlingMiddleware",
    "setup_error_handlers",
    "sanitize_error_message",
    # Logging
    "StructuredFormatter",
    "StructuredLoggingMiddleware",
    "setup_logging",
    "get_logger",
]
