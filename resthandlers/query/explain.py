"""Debug rendering of compiled query trees.

The renderings are for logs and test assertions only; the DBO builder
consumes the model tree itself.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Union

from resthandlers.query.models.query_spec import (
    FilterGroup,
    FilterPredicate,
    OrderElement,
    PropertyRef,
    TransformCall,
    TransformKind,
)


def serialize_expression(expression: Union[PropertyRef, TransformCall]) -> str:
    """Render a value expression, e.g. ``length(accountRef.lastName)``."""
    if isinstance(expression, PropertyRef):
        return expression.path
    inner = serialize_expression(expression.operand)
    if expression.transform is TransformKind.left_pad:
        width, char = expression.args
        return f'lpad({inner}, {width}, "{char}")'
    args = "".join(f", {arg}" for arg in expression.args)
    return f"{expression.transform.value}({inner}{args})"


def serialize_predicate(predicate: FilterPredicate | OrderElement) -> str:
    """Render a predicate or order element as ``<expression> => <operator>``."""
    operator = predicate.operator if isinstance(predicate, FilterPredicate) else predicate.direction
    return f"{serialize_expression(predicate.expression)} => {operator.value}"


def _explain_node(
    node: FilterPredicate | FilterGroup, params: Mapping[str, Any] | None
) -> str:
    if isinstance(node, FilterPredicate):
        label = serialize_predicate(node)
        if node.count is not None:
            label += f" {node.count}"
        if node.operand is not None:
            label += f" :{node.operand.name}"
            if params is not None and node.operand.name in params:
                label += f"={json.dumps(params[node.operand.name], default=str)}"
        if node.nested_filter is not None:
            label += f" WHERE {_explain_node(node.nested_filter, params)}"
        return label
    parts = [_explain_node(member, params) for member in node.members]
    rendered = f"{node.junction.value.upper()}({', '.join(parts)})"
    return f"NOT {rendered}" if node.negated else rendered


def explain_filter(
    group: FilterGroup | None, params: Mapping[str, Any] | None = None
) -> str:
    """Build a one-line explanation of a filter tree.

    Args:
        group: Root filter group, or None for no filter.
        params: Bound query parameters to show next to parameter references.

    Returns:
        Explanation such as
        ``AND(status => eq :pf0="PENDING", price => ge :pf1=10)``.
    """
    if group is None:
        return "No filter."
    return _explain_node(group, params)
