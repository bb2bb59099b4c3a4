"""Pydantic models for compiled search queries."""

from resthandlers.query.models.query_spec import (
    COUNT_OPERATORS,
    MULTI_VALUE_OPERATORS,
    REGEX_OPERATORS,
    FilterGroup,
    FilterNode,
    FilterPredicate,
    Junction,
    LockMode,
    OperatorId,
    OrderElement,
    PropertyRef,
    QueryParamRef,
    QueryParts,
    QuerySpec,
    TransformCall,
    TransformKind,
    ValueExpression,
    ValueType,
    equals_param,
)

__all__ = [
    "COUNT_OPERATORS",
    "MULTI_VALUE_OPERATORS",
    "REGEX_OPERATORS",
    "FilterGroup",
    "FilterNode",
    "FilterPredicate",
    "Junction",
    "LockMode",
    "OperatorId",
    "OrderElement",
    "PropertyRef",
    "QueryParamRef",
    "QueryParts",
    "QuerySpec",
    "TransformCall",
    "TransformKind",
    "ValueExpression",
    "ValueType",
    "equals_param",
]
