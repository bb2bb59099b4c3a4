"""Filter group parser.

Collects the ``<groupId>$...`` parameters of one filter group from the
URL query and builds a FilterGroup from them:

    f$status=PENDING             leaf predicate with a bound parameter
    f$price:min=10               explicit operator
    f$:or=g1                     nested group g1, OR junction
    g1$status=SHIPPED            member of nested group g1
    f$items=g2                   collection test with element filter g2
    f$items:count=3:g2           count of elements matching g2

Nested group references are followed recursively. The set of ancestor
group ids travels down the recursion as a frozenset, so a group that
refers back to itself, directly or transitively, is rejected.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping, MutableMapping, Sequence

from resthandlers.errors.domain import RequestSyntaxError, SyntaxErrorCode
from resthandlers.query.expression_parser import (
    FILTER_OPERATORS,
    PredicateDescriptor,
    parse_property_ref,
)
from resthandlers.query.models.query_spec import (
    COUNT_OPERATORS,
    FilterGroup,
    FilterPredicate,
    Junction,
    QueryParamRef,
)
from resthandlers.query.value_coercion import coerce_value
from resthandlers.records import PropertiesContainer

logger = logging.getLogger(__name__)

# Junction directive suffix -> (junction, negated)
JUNCTION_DIRECTIVES: Mapping[str, tuple[Junction, bool]] = {
    ":and": (Junction.AND, False),
    ":and!": (Junction.AND, True),
    ":or": (Junction.OR, False),
    ":or!": (Junction.OR, True),
}

VALUE_SEPARATOR = "|"


def _parse_count(group_id: str, value: str) -> tuple[int, str | None]:
    """Split a count operand ``"<int>[:<groupId>]"``."""
    parts = value.split(":")
    if len(parts) > 2:
        raise RequestSyntaxError(
            SyntaxErrorCode.INVALID_COUNT_VALUE,
            f'Invalid "count" filter value {value!r} in group {group_id!r}: '
            f"more than 2 colon-separated values.",
        )
    try:
        number = float(parts[0]) if parts[0].strip() else math.nan
    except ValueError:
        number = math.nan
    if not math.isfinite(number) or not number.is_integer():
        raise RequestSyntaxError(
            SyntaxErrorCode.INVALID_COUNT_VALUE,
            f'Invalid "count" filter value {value!r} in group {group_id!r}: '
            f"the count is not an integer.",
        )
    nested_group_id = parts[1] if len(parts) > 1 and parts[1] else None
    return int(number), nested_group_id


def _coerce_operand(value: str, pred: PredicateDescriptor) -> Any:
    if pred.is_multi_valued:
        return [
            coerce_value(item, pred.value_type, pred.ref_prefix)
            for item in value.split(VALUE_SEPARATOR)
        ]
    return coerce_value(value, pred.value_type, pred.ref_prefix)


def parse_filter_group(
    container: PropertiesContainer,
    group_id: str,
    junction: Junction,
    url_query: Mapping[str, Sequence[str]],
    params: MutableMapping[str, Any],
    ancestors: frozenset[str] = frozenset(),
    negated: bool = False,
) -> FilterGroup | None:
    """Parse the parameters of one filter group.

    Args:
        container: Base properties container for the group's expressions.
        group_id: Group id; its parameters are named ``<group_id>$<ref>``.
        junction: Junction of the group members.
        url_query: URL query parameters, every value a list of raw values.
        params: Query parameters accumulator; coerced operand values are
            stored under generated ``p<group_id><seq>`` names.
        ancestors: Ids of the groups enclosing this one.
        negated: Negate the group's overall result.

    Returns:
        FilterGroup, or None if the group has no members.

    Raises:
        RequestSyntaxError: On an empty or circular group id, an invalid
            junction directive, an invalid expression or operand value, or
            a missing required operand.
    """
    if not group_id:
        raise RequestSyntaxError(SyntaxErrorCode.EMPTY_GROUP_ID, "Empty nested filter group id.")
    if group_id in ancestors:
        raise RequestSyntaxError(
            SyntaxErrorCode.CIRCULAR_GROUP_REFERENCE,
            f"Circular filter group reference to {group_id!r}.",
        )

    prefix = f"{group_id}$"
    nested_ancestors = ancestors | {group_id}
    next_param_id = 0
    members: list[FilterPredicate | FilterGroup] = []

    for name, values in url_query.items():
        if not name.startswith(prefix):
            continue
        ref = name[len(prefix):]

        for value in values:
            if ref.startswith(":"):
                directive = JUNCTION_DIRECTIVES.get(ref)
                if directive is None:
                    raise RequestSyntaxError(
                        SyntaxErrorCode.INVALID_JUNCTION,
                        f"Invalid junction type {ref!r} in filter group {group_id!r}.",
                    )
                nested_junction, nested_negated = directive
                nested = parse_filter_group(
                    container, value, nested_junction, url_query, params,
                    nested_ancestors, nested_negated,
                )
                if nested is not None:
                    members.append(nested)
                continue

            has_value = len(value) > 0
            pred = parse_property_ref(container, ref, FILTER_OPERATORS, has_value)

            if not has_value:
                if pred.value_required:
                    raise RequestSyntaxError(
                        SyntaxErrorCode.MISSING_VALUE,
                        f"Filter {ref!r} in group {group_id!r} requires a value.",
                    )
                members.append(FilterPredicate(
                    expression=pred.expression,
                    operator=pred.operator,
                    inverted=pred.inverted,
                ))
                continue

            if pred.is_collection:
                count = None
                if pred.operator in COUNT_OPERATORS:
                    count, nested_group_id = _parse_count(group_id, value)
                else:
                    nested_group_id = value
                nested = None
                if nested_group_id:
                    nested = parse_filter_group(
                        pred.element_container, nested_group_id, Junction.AND,
                        url_query, params, nested_ancestors,
                    )
                members.append(FilterPredicate(
                    expression=pred.expression,
                    operator=pred.operator,
                    inverted=pred.inverted,
                    count=count,
                    nested_filter=nested,
                ))
                continue

            param_name = f"p{group_id}{next_param_id}"
            next_param_id += 1
            params[param_name] = _coerce_operand(value, pred)
            members.append(FilterPredicate(
                expression=pred.expression,
                operator=pred.operator,
                inverted=pred.inverted,
                operand=QueryParamRef(name=param_name),
            ))

    if not members:
        logger.debug("Filter group %r has no members", group_id)
        return None
    return FilterGroup(junction=junction, negated=negated, members=members)
