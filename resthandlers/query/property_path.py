"""Property path resolution against a record type schema.

Resolves dotted paths such as ``accountRef.lastName`` one segment at a
time. Intermediate segments must be scalar (a nested object or a
reference); collections cannot be dotted through. A terminal reference
resolves to the id value type of the referred record type and records the
``"<Target>#"`` prefix so filter values may be given bare or fully
qualified.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from resthandlers.errors.domain import RequestSyntaxError, SyntaxErrorCode
from resthandlers.records import PropertiesContainer


@dataclass(frozen=True)
class ResolvedPath:
    """Result of resolving a property path.

    Attributes:
        path: The dotted path as given.
        property_desc: Descriptor of the terminal property.
        value_type: Value type of the terminal property; for references the
            id value type of the referred record type.
        is_collection: True if the terminal property is an array or map.
        ref_prefix: ``"<Target>#"`` for references, None otherwise.
        element_container: Container of the terminal property's elements
            for nested objects and references, None for primitives.
    """

    path: str
    property_desc: Any
    value_type: str
    is_collection: bool
    ref_prefix: str | None
    element_container: PropertiesContainer | None


def resolve_property_path(container: PropertiesContainer, path: str) -> ResolvedPath:
    """Resolve a dotted property path.

    Args:
        container: Root properties container (usually a record type).
        path: Dot-separated property path.

    Returns:
        ResolvedPath describing the terminal property.

    Raises:
        RequestSyntaxError: INVALID_PATH if a segment does not exist,
            NON_SCALAR_INTERMEDIATE if a non-terminal segment is a
            collection, INVALID_OBJECT_USAGE if the path ends on a
            single nested object.
    """
    segments = path.split(".")
    current = container
    prop_desc = None
    for index, segment in enumerate(segments):
        if not segment or current is None or not current.has_property(segment):
            raise RequestSyntaxError(
                SyntaxErrorCode.INVALID_PATH,
                f"Invalid property path {path!r}: no property {segment!r}.",
            )
        prop_desc = current.get_property_desc(segment)
        if index < len(segments) - 1:
            if not prop_desc.is_scalar():
                raise RequestSyntaxError(
                    SyntaxErrorCode.NON_SCALAR_INTERMEDIATE,
                    f"Invalid property path {path!r}: intermediate property "
                    f"{segment!r} is not scalar.",
                )
            current = prop_desc.nested_properties

    if prop_desc.is_ref():
        target = prop_desc.nested_properties
        value_type = target.get_property_desc(target.id_property_name).scalar_value_type
        ref_prefix = f"{target.name}#"
        element_container = target
    else:
        value_type = prop_desc.scalar_value_type
        ref_prefix = None
        element_container = prop_desc.nested_properties if value_type == "object" else None

    if value_type == "object" and prop_desc.is_scalar():
        raise RequestSyntaxError(
            SyntaxErrorCode.INVALID_OBJECT_USAGE,
            f"Invalid property path {path!r}: nested object property cannot be "
            f"tested directly.",
        )

    return ResolvedPath(
        path=path,
        property_desc=prop_desc,
        value_type=value_type,
        is_collection=not prop_desc.is_scalar(),
        ref_prefix=ref_prefix,
        element_container=element_container,
    )
