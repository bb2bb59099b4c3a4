"""Search query compiler: URL query string → QuerySpec.

Handles the four parts of a search URL query:

    p=<prop>,<prop>...              projection (passed through)
    f$<ref>=<value> ...              filter (see filter_group_parser)
    o=<ref>[:asc|:desc],...          ordering, same expression grammar
    r=<offset>,<limit>               range, at most once

Example:
    params = {}
    spec = parse_search_query(
        order_type,
        {"f$status": ["PENDING"], "f$price:min": ["10"], "o": ["placedOn:desc"]},
        QueryParts.ALL,
        params,
    )
    # spec.filter: AND(status => eq :pf0, price => ge :pf1)
    # params: {"pf0": "PENDING", "pf1": 10}
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, MutableMapping
from typing import Any

from resthandlers.errors.domain import RequestSyntaxError, SyntaxErrorCode
from resthandlers.query.explain import explain_filter
from resthandlers.query.expression_parser import ORDER_OPERATORS, parse_property_ref
from resthandlers.query.filter_group_parser import parse_filter_group
from resthandlers.query.models.query_spec import (
    Junction,
    OrderElement,
    QueryParts,
    QuerySpec,
)
from resthandlers.records import PropertiesContainer

logger = logging.getLogger(__name__)

ROOT_FILTER_GROUP = "f"

UrlQuery = Mapping[str, str | list[str]] | Iterable[tuple[str, str]]


def normalize_url_query(url_query: UrlQuery) -> dict[str, list[str]]:
    """Normalize URL query parameters to ``{name: [value, ...]}``.

    Accepts a mapping with single or list values, or a sequence of
    ``(name, value)`` pairs such as ``starlette``'s ``multi_items()``.
    Parameter order is the order of first appearance.
    """
    normalized: dict[str, list[str]] = {}
    items = url_query.items() if isinstance(url_query, Mapping) else url_query
    for name, value in items:
        values = normalized.setdefault(name, [])
        if isinstance(value, (list, tuple)):
            values.extend(str(v) for v in value)
        else:
            values.append(str(value))
    return normalized


def _given(query: Mapping[str, list[str]], name: str) -> list[str] | None:
    """Values of a query part; a single empty value counts as absent."""
    values = query.get(name)
    if not values or values == [""]:
        return None
    return values


def _comma_list(values: list[str]) -> list[str]:
    return [item for item in ",".join(values).split(",") if item]


def _is_ascii_int(token: str) -> bool:
    return token.isascii() and token.isdigit()


def _parse_range(values: list[str]) -> tuple[int, int]:
    if len(values) > 1:
        raise RequestSyntaxError(
            SyntaxErrorCode.DUPLICATE_RANGE, "More than one range specification."
        )
    parts = values[0].split(",")
    if len(parts) != 2 or not all(_is_ascii_int(part.strip()) for part in parts):
        raise RequestSyntaxError(
            SyntaxErrorCode.INVALID_RANGE,
            f"Invalid range specification {values[0]!r}: expected <offset>,<limit>.",
        )
    offset, limit = (int(part) for part in parts)
    return offset, limit


def parse_search_query(
    record_type: PropertiesContainer,
    url_query: UrlQuery,
    parts: QueryParts | str,
    params: MutableMapping[str, Any],
    log: logging.Logger | logging.LoggerAdapter | None = None,
) -> QuerySpec:
    """Compile URL query parameters into a fetch query specification.

    Args:
        record_type: Descriptor of the searched record type.
        url_query: URL query parameters.
        parts: Parts to compile, a QueryParts flag or its letter form
            (``"pfor"``; ``"f"`` for filter-only bulk operations).
        params: Query parameters accumulator for bound filter values.
        log: Logger for the compiled query; module logger if omitted.

    Returns:
        QuerySpec with the requested parts. Parts not requested, or not
        present in the query, are None.

    Raises:
        RequestSyntaxError: If any part of the query is malformed.
    """
    log = log or logger
    if isinstance(parts, str):
        parts = QueryParts.parse(parts)
    query = normalize_url_query(url_query)

    props = None
    if QueryParts.PROPS in parts and _given(query, "p"):
        props = _comma_list(query["p"])

    filter_group = None
    if QueryParts.FILTER in parts:
        filter_group = parse_filter_group(
            record_type, ROOT_FILTER_GROUP, Junction.AND, query, params
        )

    order = None
    if QueryParts.ORDER in parts and _given(query, "o"):
        order = []
        for element in _comma_list(query["o"]):
            desc = parse_property_ref(record_type, element, ORDER_OPERATORS)
            order.append(OrderElement(expression=desc.expression, direction=desc.operator))

    range_ = None
    if QueryParts.RANGE in parts and _given(query, "r"):
        range_ = _parse_range(query["r"])

    spec = QuerySpec(props=props, filter=filter_group, order=order, range=range_)
    log.debug("Compiled search query: %s", explain_filter(filter_group, params))
    return spec
