"""Search query compilation: URL query string to QuerySpec."""

from resthandlers.query.explain import explain_filter, serialize_expression, serialize_predicate
from resthandlers.query.expression_parser import (
    FILTER_OPERATORS,
    ORDER_OPERATORS,
    PredicateDescriptor,
    format_property_ref,
    parse_property_ref,
)
from resthandlers.query.filter_group_parser import parse_filter_group
from resthandlers.query.property_path import ResolvedPath, resolve_property_path
from resthandlers.query.search_query import normalize_url_query, parse_search_query
from resthandlers.query.value_coercion import coerce_value

__all__ = [
    "FILTER_OPERATORS",
    "ORDER_OPERATORS",
    "PredicateDescriptor",
    "ResolvedPath",
    "coerce_value",
    "explain_filter",
    "format_property_ref",
    "normalize_url_query",
    "parse_filter_group",
    "parse_property_ref",
    "parse_search_query",
    "resolve_property_path",
    "serialize_expression",
    "serialize_predicate",
]
