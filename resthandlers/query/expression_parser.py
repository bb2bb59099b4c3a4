"""Property reference expression parser.

Parses one ``<path>[:<transform>[:<arg>]*]*[:<operator>][!]`` expression
from the URL query into a PredicateDescriptor: the resolved property, the
value expression tree (PropertyRef wrapped in TransformCall nodes), the
effective operator looked up in an operator table, and the value handling
rules for the operand.

Both filter predicates and order elements route through
parse_property_ref(); they differ only in the operator table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from resthandlers.errors.domain import RequestSyntaxError, SyntaxErrorCode
from resthandlers.query.models.query_spec import (
    COUNT_OPERATORS,
    MULTI_VALUE_OPERATORS,
    REGEX_OPERATORS,
    OperatorId,
    PropertyRef,
    TransformCall,
    TransformKind,
    ValueExpression,
)
from resthandlers.query.property_path import resolve_property_path
from resthandlers.records import PropertiesContainer

DEFAULT_KEY = "$default"

# URL operator token -> effective operator. "$default" keys are synthesized
# from the collection/value/inversion markers when no token is given.
FILTER_OPERATORS: Mapping[str, OperatorId] = MappingProxyType({
    "$default": OperatorId.not_empty,
    "$default!": OperatorId.empty,
    "$default:collection": OperatorId.not_empty,
    "$default:collection!": OperatorId.empty,
    "$default:value": OperatorId.equals,
    "$default:value!": OperatorId.not_equals,
    "$default:collection:value": OperatorId.not_empty,
    "$default:collection:value!": OperatorId.empty,
    "min": OperatorId.ge,
    "min!": OperatorId.lt,
    "max": OperatorId.le,
    "max!": OperatorId.gt,
    "pat": OperatorId.matches_regex_ci,
    "pat!": OperatorId.not_matches_regex_ci,
    "mid": OperatorId.contains_ci,
    "mid!": OperatorId.not_contains_ci,
    "pre": OperatorId.starts_with_ci,
    "pre!": OperatorId.not_starts_with_ci,
    "alt": OperatorId.in_,
    "alt!": OperatorId.not_in,
    "count": OperatorId.count,
    "count!": OperatorId.not_count,
})

ORDER_OPERATORS: Mapping[str, OperatorId] = MappingProxyType({
    "$default": OperatorId.asc,
    "asc": OperatorId.asc,
    "desc": OperatorId.desc,
})

# Value types an operator may be applied to; operators not listed accept any.
_OPERATOR_VALUE_TYPES: Mapping[OperatorId, frozenset[str]] = MappingProxyType({
    OperatorId.ge: frozenset({"string", "number", "datetime"}),
    OperatorId.le: frozenset({"string", "number", "datetime"}),
    OperatorId.lt: frozenset({"string", "number", "datetime"}),
    OperatorId.gt: frozenset({"string", "number", "datetime"}),
    OperatorId.matches_regex_ci: frozenset({"string"}),
    OperatorId.not_matches_regex_ci: frozenset({"string"}),
    OperatorId.contains_ci: frozenset({"string"}),
    OperatorId.not_contains_ci: frozenset({"string"}),
    OperatorId.starts_with_ci: frozenset({"string"}),
    OperatorId.not_starts_with_ci: frozenset({"string"}),
})

_TRANSFORM_TOKENS: Mapping[str, TransformKind] = MappingProxyType({
    "len": TransformKind.length,
    "lc": TransformKind.lowercase,
    "sub": TransformKind.substring,
    "lpad": TransformKind.left_pad,
})

_TOKEN_BY_TRANSFORM = {kind: token for token, kind in _TRANSFORM_TOKENS.items()}


@dataclass(frozen=True)
class PredicateDescriptor:
    """Parsed property reference expression.

    Attributes:
        property_desc: Descriptor of the terminal property.
        path: Dotted property path.
        expression: Value expression tree.
        transforms: Applied transforms in order, for round-tripping.
        value_type: Operand value type; ``pattern`` for regex operators,
            ``number`` for collection counts.
        ref_prefix: Reference prefix accepted on operand values; cleared
            by any transform.
        is_collection: The property is a collection.
        element_container: Element schema of a collection of objects or
            references.
        operator: Effective operator, inversion applied.
        operator_token: Explicit operator token without ``!``, or None
            when the default was used.
        inverted: The expression ended with ``!``.
        is_multi_valued: Operand is a ``|``-separated value list.
        value_required: An operand must be supplied.
    """

    property_desc: Any
    path: str
    expression: ValueExpression
    transforms: tuple[TransformCall, ...]
    value_type: str
    ref_prefix: str | None
    is_collection: bool
    element_container: PropertiesContainer | None
    operator: OperatorId
    operator_token: str | None
    inverted: bool
    is_multi_valued: bool
    value_required: bool
    source: str = field(default="", compare=False)


def _non_negative_int(token: str) -> int | None:
    if not (token.isascii() and token.isdigit()):
        return None
    return int(token)


def parse_property_ref(
    container: PropertiesContainer,
    expression: str,
    operator_table: Mapping[str, OperatorId],
    value_provided: bool = False,
) -> PredicateDescriptor:
    """Parse a property reference expression.

    Args:
        container: Base properties container for the property path.
        expression: Expression such as ``accountRef.lastName:len:min`` or
            ``price:max!``.
        operator_table: Operator token mapping, FILTER_OPERATORS or
            ORDER_OPERATORS.
        value_provided: An operand value accompanies the expression; selects
            the ``:value`` default operator.

    Returns:
        PredicateDescriptor for the expression.

    Raises:
        RequestSyntaxError: On any malformed expression.
    """
    source = expression

    def error(code: SyntaxErrorCode, message: str) -> RequestSyntaxError:
        return RequestSyntaxError(code, f"Invalid expression {source!r}: {message}")

    inverted = expression.endswith("!")
    if inverted:
        expression = expression[:-1]

    parts = expression.split(":")
    resolved = resolve_property_path(container, parts[0])
    spec: ValueExpression = PropertyRef(path=resolved.path)
    value_type = resolved.value_type
    ref_prefix = resolved.ref_prefix
    transforms: list[TransformCall] = []
    op_token: str | None = None

    i = 1
    count = len(parts)
    while i < count:
        part = parts[i]

        if resolved.is_collection:
            if part != "count":
                raise error(
                    SyntaxErrorCode.ILLEGAL_COLLECTION_OPERATION,
                    "transformation or operation on a non-scalar.",
                )
            if i < count - 1:
                raise error(
                    SyntaxErrorCode.ILLEGAL_COLLECTION_OPERATION,
                    '"count" must be the only operation.',
                )
            op_token = part
            value_type = "number"
            ref_prefix = None
            i += 1
            continue

        kind = _TRANSFORM_TOKENS.get(part)
        if kind is None:
            if i < count - 1:
                raise error(SyntaxErrorCode.UNKNOWN_TRANSFORMATION, f"unknown transformation {part!r}.")
            op_token = part
            i += 1
            continue

        if value_type != "string":
            raise error(
                SyntaxErrorCode.INVALID_TRANSFORM_INPUT,
                f'transformation "{part}" expects string input.',
            )

        args: list[int | str] = []
        if kind in (TransformKind.substring, TransformKind.left_pad):
            if i + 2 >= count:
                raise error(SyntaxErrorCode.ARITY_ERROR, f'transformation "{part}" expects two arguments.')
            first = _non_negative_int(parts[i + 1])
            if first is None:
                raise error(
                    SyntaxErrorCode.INVALID_TRANSFORM_ARGUMENT,
                    f'transformation "{part}" expects non-negative integer first argument.',
                )
            args.append(first)
            second = parts[i + 2]
            if kind is TransformKind.substring:
                if second:
                    length = _non_negative_int(second)
                    if length is None:
                        raise error(
                            SyntaxErrorCode.INVALID_TRANSFORM_ARGUMENT,
                            'transformation "sub" expects empty or non-negative '
                            "integer second argument.",
                        )
                    args.append(length)
            else:
                if len(second) > 1:
                    raise error(
                        SyntaxErrorCode.INVALID_TRANSFORM_ARGUMENT,
                        'transformation "lpad" expects empty or single character '
                        "second argument.",
                    )
                args.append(second or " ")
            i += 2

        spec = TransformCall(transform=kind, operand=spec, args=args)
        transforms.append(spec)
        value_type = "number" if kind is TransformKind.length else "string"
        ref_prefix = None
        i += 1

    if op_token is not None:
        key = op_token + "!" if inverted else op_token
        operator = operator_table.get(key)
        if operator is None:
            raise error(SyntaxErrorCode.UNKNOWN_OPERATOR, f"unknown operation {key!r}.")
    else:
        key = DEFAULT_KEY
        if resolved.is_collection:
            key += ":collection"
        if value_provided:
            key += ":value"
        if inverted:
            key += "!"
        operator = operator_table.get(key)
        if operator is None:
            raise error(SyntaxErrorCode.EXPRESSION_NOT_ALLOWED, "this type of expression is not allowed.")

    if operator in COUNT_OPERATORS and not resolved.is_collection:
        raise error(SyntaxErrorCode.EXPRESSION_NOT_ALLOWED, '"count" applies to collections only.')
    legal_types = _OPERATOR_VALUE_TYPES.get(operator)
    if legal_types is not None and value_type not in legal_types:
        raise error(
            SyntaxErrorCode.EXPRESSION_NOT_ALLOWED,
            f"operation {key!r} is not applicable to {value_type} values.",
        )

    return PredicateDescriptor(
        property_desc=resolved.property_desc,
        path=resolved.path,
        expression=spec,
        transforms=tuple(transforms),
        value_type="pattern" if operator in REGEX_OPERATORS else value_type,
        ref_prefix=ref_prefix,
        is_collection=resolved.is_collection,
        element_container=resolved.element_container,
        operator=operator,
        operator_token=op_token,
        inverted=inverted,
        is_multi_valued=operator in MULTI_VALUE_OPERATORS,
        value_required=not key.startswith(DEFAULT_KEY),
        source=source,
    )


def format_property_ref(descriptor: PredicateDescriptor) -> str:
    """Render a descriptor back into the URL expression grammar.

    Parsing the result with the same operator table yields an equivalent
    descriptor.
    """
    parts = [descriptor.path]
    for transform in descriptor.transforms:
        parts.append(_TOKEN_BY_TRANSFORM[transform.transform])
        if transform.transform is TransformKind.substring:
            parts.append(str(transform.args[0]))
            parts.append(str(transform.args[1]) if len(transform.args) > 1 else "")
        elif transform.transform is TransformKind.left_pad:
            parts.extend(str(arg) for arg in transform.args)
    if descriptor.operator_token is not None:
        parts.append(descriptor.operator_token)
    rendered = ":".join(parts)
    return rendered + "!" if descriptor.inverted else rendered
