"""Typed domain exceptions for request processing.

These exceptions give the verb handlers and the HTTP adapter a stable
contract for mapping failures to responses without string matching:

- RequestSyntaxError: malformed user input (query string, patch document,
  record reference). Maps to HTTP 400. Never retried.
- DataError: an internal data invariant was violated (for example more
  than one record matched a supposedly unique filter). Maps to HTTP 500.
- UsageError: the library was used incorrectly by the calling code.
- ResponseError: a phase rejected the call with a ready HTTP response
  (404, 409, 422 ...). Rolls the transaction back like any other failure.

Usage:
    # In a transaction phase
    raise ResponseError(error_response("RSRC-404-1"))

    # In the HTTP adapter
    except RequestSyntaxError as e:
        return JSONResponse(status_code=400, content={"errorMessage": str(e)})
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from resthandlers.http.service import ServiceResponse


class SyntaxErrorCode(str, Enum):
    """Deterministic error codes for malformed request input."""

    INVALID_PATH = "INVALID_PATH"
    NON_SCALAR_INTERMEDIATE = "NON_SCALAR_INTERMEDIATE"
    INVALID_OBJECT_USAGE = "INVALID_OBJECT_USAGE"
    INVALID_VALUE = "INVALID_VALUE"
    ILLEGAL_COLLECTION_OPERATION = "ILLEGAL_COLLECTION_OPERATION"
    ARITY_ERROR = "ARITY_ERROR"
    INVALID_TRANSFORM_INPUT = "INVALID_TRANSFORM_INPUT"
    INVALID_TRANSFORM_ARGUMENT = "INVALID_TRANSFORM_ARGUMENT"
    UNKNOWN_TRANSFORMATION = "UNKNOWN_TRANSFORMATION"
    UNKNOWN_OPERATOR = "UNKNOWN_OPERATOR"
    EXPRESSION_NOT_ALLOWED = "EXPRESSION_NOT_ALLOWED"
    MISSING_VALUE = "MISSING_VALUE"
    EMPTY_GROUP_ID = "EMPTY_GROUP_ID"
    CIRCULAR_GROUP_REFERENCE = "CIRCULAR_GROUP_REFERENCE"
    INVALID_JUNCTION = "INVALID_JUNCTION"
    INVALID_COUNT_VALUE = "INVALID_COUNT_VALUE"
    DUPLICATE_RANGE = "DUPLICATE_RANGE"
    INVALID_RANGE = "INVALID_RANGE"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    INVALID_PATCH = "INVALID_PATCH"


class RestHandlersError(Exception):
    """Base exception for all resthandlers errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class RequestSyntaxError(RestHandlersError):
    """Malformed request input. Maps to HTTP 400."""

    def __init__(self, code: SyntaxErrorCode, message: str) -> None:
        """Initialize with a deterministic error code and message.

        Args:
            code: The specific error code from SyntaxErrorCode enum.
            message: Human-readable description of the problem.
        """
        self.code = code
        self.message = message
        super().__init__(f"[{code.value}] {message}")


class DataError(RestHandlersError):
    """Internal data invariant violated. Maps to HTTP 500."""


class UsageError(RestHandlersError):
    """The library API was called incorrectly."""


class ResponseError(RestHandlersError):
    """Rejection of the call with a prepared HTTP response."""

    def __init__(self, response: ServiceResponse) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response
