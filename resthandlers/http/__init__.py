"""HTTP-level models: service call/response and conditional requests."""

from resthandlers.http.conditional import (
    ConditionalOutcome,
    VersionDescriptor,
    build_etag,
    evaluate_preconditions,
    format_http_date,
    is_conditional_request,
    parse_http_date,
    version_descriptor,
)
from resthandlers.http.service import (
    Actor,
    ServiceCall,
    ServiceResponse,
    create_response,
    error_response,
)

__all__ = [
    "Actor",
    "ServiceCall",
    "ServiceResponse",
    "create_response",
    "error_response",
    "ConditionalOutcome",
    "VersionDescriptor",
    "build_etag",
    "evaluate_preconditions",
    "format_http_date",
    "is_conditional_request",
    "parse_http_date",
    "version_descriptor",
]
