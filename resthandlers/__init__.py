"""Transactional REST resource handlers for record collections.

Compiles URL search queries into query specifications, runs each call's
database work as ordered phases inside one transaction, and evaluates
conditional request headers against record and collection versions.
"""

from resthandlers.config import HandlersConfig, ResthandlersConfig, load_settings
from resthandlers.errors import DataError, RequestSyntaxError, ResponseError, UsageError
from resthandlers.handlers import (
    CollectionResourceHandler,
    IndividualResourceHandler,
    ResourceHandlersFactory,
)
from resthandlers.http import ServiceCall, ServiceResponse
from resthandlers.query import parse_search_query

__version__ = "0.1.0"

__all__ = [
    "CollectionResourceHandler",
    "DataError",
    "HandlersConfig",
    "IndividualResourceHandler",
    "RequestSyntaxError",
    "ResourceHandlersFactory",
    "ResponseError",
    "ResthandlersConfig",
    "ServiceCall",
    "ServiceResponse",
    "UsageError",
    "load_settings",
    "parse_search_query",
]
