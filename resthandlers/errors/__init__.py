"""Error handling framework for resthandlers.

This package provides:
- Typed domain exceptions (syntax, data, usage and response errors)
- Response error code registry with RSRC-<status>-<n> format codes

Error categories:
- request: 4xx responses caused by the request itself
- state: 404/412 responses caused by the stored data
"""

from resthandlers.errors.domain import (
    DataError,
    RequestSyntaxError,
    ResponseError,
    RestHandlersError,
    SyntaxErrorCode,
    UsageError,
)
from resthandlers.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    format_error_message,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Domain exceptions
    "RestHandlersError",
    "RequestSyntaxError",
    "SyntaxErrorCode",
    "DataError",
    "UsageError",
    "ResponseError",
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    "format_error_message",
]
