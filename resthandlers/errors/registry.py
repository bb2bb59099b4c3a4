"""Response error code registry with RSRC-<status>-<n> format codes.

Each code maps to the HTTP status it is sent with and the message placed
in the ``errorMessage`` field of the error entity. Handlers never compose
error entities by hand; they look the code up here.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for response error codes."""

    REQUEST = "request"  # 4xx caused by the request
    STATE = "state"  # 404/412 caused by the stored data


@dataclass
class ErrorCode:
    """Definition of a response error code.

    Attributes:
        code: Error code in RSRC-<status>-<n> format.
        status: HTTP status code the error is sent with.
        category: Error category for grouping.
        message_template: Message with {placeholders} for context.
    """

    code: str
    status: int
    category: ErrorCategory
    message_template: str


ERROR_REGISTRY: dict[str, ErrorCode] = {
    "RSRC-400-1": ErrorCode(
        code="RSRC-400-1",
        status=400,
        category=ErrorCategory.REQUEST,
        message_template="Invalid query string.",
    ),
    "RSRC-400-2": ErrorCode(
        code="RSRC-400-2",
        status=400,
        category=ErrorCategory.REQUEST,
        message_template="Expected record data in the request entity.",
    ),
    "RSRC-400-3": ErrorCode(
        code="RSRC-400-3",
        status=400,
        category=ErrorCategory.REQUEST,
        message_template="Invalid record data.",
    ),
    "RSRC-400-4": ErrorCode(
        code="RSRC-400-4",
        status=400,
        category=ErrorCategory.REQUEST,
        message_template="Expected patch document in the request body.",
    ),
    "RSRC-400-5": ErrorCode(
        code="RSRC-400-5",
        status=400,
        category=ErrorCategory.REQUEST,
        message_template="Invalid patch document: {detail}",
    ),
    "RSRC-400-6": ErrorCode(
        code="RSRC-400-6",
        status=400,
        category=ErrorCategory.REQUEST,
        message_template="Invalid query string: {detail}",
    ),
    "RSRC-400-7": ErrorCode(
        code="RSRC-400-7",
        status=400,
        category=ErrorCategory.REQUEST,
        message_template="Record data does not match the resource URI.",
    ),
    "RSRC-400-8": ErrorCode(
        code="RSRC-400-8",
        status=400,
        category=ErrorCategory.REQUEST,
        message_template="Invalid request entity: {detail}",
    ),
    "RSRC-404-1": ErrorCode(
        code="RSRC-404-1",
        status=404,
        category=ErrorCategory.STATE,
        message_template="Record not found.",
    ),
    "RSRC-404-2": ErrorCode(
        code="RSRC-404-2",
        status=404,
        category=ErrorCategory.STATE,
        message_template="Parent record not found.",
    ),
    "RSRC-405-1": ErrorCode(
        code="RSRC-405-1",
        status=405,
        category=ErrorCategory.REQUEST,
        message_template="Method {method} is not allowed.",
    ),
    "RSRC-412-1": ErrorCode(
        code="RSRC-412-1",
        status=412,
        category=ErrorCategory.STATE,
        message_template="Precondition failed.",
    ),
    "RSRC-415-1": ErrorCode(
        code="RSRC-415-1",
        status=415,
        category=ErrorCategory.REQUEST,
        message_template="Unsupported patch document format.",
    ),
    "RSRC-422-1": ErrorCode(
        code="RSRC-422-1",
        status=422,
        category=ErrorCategory.REQUEST,
        message_template="Patch results in invalid record data.",
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in RSRC-<status>-<n> format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all error codes in a category.

    Args:
        category: The error category to filter by.

    Returns:
        List of ErrorCode instances in the category.
    """
    return [e for e in ERROR_REGISTRY.values() if e.category == category]


def format_error_message(code: str, **context: object) -> str:
    """Render the message template of a registered code.

    Missing placeholders leave the template untouched.

    Args:
        code: Registered error code.
        **context: Values substituted into the message template.

    Returns:
        The formatted message.

    Raises:
        KeyError: If the code is not registered.
    """
    error_def = ERROR_REGISTRY[code]
    try:
        return error_def.message_template.format(**context)
    except KeyError:
        return error_def.message_template
