"""Record type descriptors consumed by the query parser and the handlers.

The parser only needs the narrow ``PropertiesContainer`` protocol
(``has_property`` / ``get_property_desc``) and a property descriptor
exposing ``is_scalar``, ``is_ref``, ``scalar_value_type`` and
``nested_properties``. This module provides that protocol plus a concrete
pydantic implementation:

    library = RecordTypesLibrary([
        RecordTypeDescriptor(
            name="Order",
            properties=[
                PropertyDescriptor(name="id", value_type="number"),
                PropertyDescriptor(name="status", value_type="string"),
                PropertyDescriptor(name="accountRef", value_type="ref", ref_target="Account"),
                PropertyDescriptor(
                    name="items",
                    value_type="object",
                    collection=True,
                    properties=[PropertyDescriptor(name="quantity", value_type="number")],
                ),
            ],
        ),
        ...
    ])
"""

from __future__ import annotations

import math
from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from resthandlers.errors.domain import RequestSyntaxError, SyntaxErrorCode, UsageError

PropertyValueType = Literal["string", "number", "boolean", "datetime", "object", "ref"]


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class PropertiesContainer(Protocol):
    """Anything that holds named property descriptors."""

    def has_property(self, name: str) -> bool: ...

    def get_property_desc(self, name: str) -> Any: ...


# ---------------------------------------------------------------------------
# Concrete descriptors
# ---------------------------------------------------------------------------


class PropertyDescriptor(BaseModel):
    """Descriptor of a single record property."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., description="Property name.")
    value_type: PropertyValueType = Field(..., description="Value type of the property.")
    collection: bool = Field(default=False, description="Array (or map) property.")
    ref_target: str | None = Field(default=None, description="Referred record type name.")
    properties: list[PropertyDescriptor] = Field(
        default_factory=list, description="Nested object properties."
    )

    _library: Any = PrivateAttr(default=None)
    _nested: Any = PrivateAttr(default=None)

    def is_scalar(self) -> bool:
        return not self.collection

    def is_ref(self) -> bool:
        return self.value_type == "ref"

    @property
    def scalar_value_type(self) -> str:
        return self.value_type

    @property
    def nested_properties(self) -> PropertiesContainer | None:
        """Container of the nested object or of the referred record type."""
        if self.is_ref():
            if self._library is None:
                raise UsageError(f"Property {self.name!r} is not bound to a record types library.")
            return self._library.get_record_type_desc(self.ref_target or "")
        if self.value_type == "object":
            if self._nested is None:
                self._nested = PropertiesContainerModel(name=self.name, properties=self.properties)
                self._nested._bind(self._library)
            return self._nested
        return None

    def _bind(self, library: RecordTypesLibrary | None) -> None:
        self._library = library
        self._nested = None
        for prop in self.properties:
            prop._bind(library)


class PropertiesContainerModel(BaseModel):
    """A named set of property descriptors."""

    name: str
    properties: list[PropertyDescriptor] = Field(default_factory=list)

    def has_property(self, name: str) -> bool:
        return any(prop.name == name for prop in self.properties)

    def get_property_desc(self, name: str) -> PropertyDescriptor:
        for prop in self.properties:
            if prop.name == name:
                return prop
        raise UsageError(f"Container {self.name!r} has no property {name!r}.")

    def _bind(self, library: RecordTypesLibrary | None) -> None:
        for prop in self.properties:
            prop._bind(library)


class RecordTypeDescriptor(PropertiesContainerModel):
    """Descriptor of a record type."""

    id_property_name: str = Field(default="id", description="Name of the record id property.")
    version_property: str | None = Field(
        default=None, description="Meta-property holding the record version."
    )
    modified_on_property: str | None = Field(
        default=None, description="Meta-property holding the last modification timestamp."
    )

    @property
    def version_props(self) -> list[str]:
        """Names of the record version meta-properties that are defined."""
        return [p for p in (self.version_property, self.modified_on_property) if p]

    @property
    def id_value_type(self) -> str:
        return self.get_property_desc(self.id_property_name).scalar_value_type


class RecordTypesLibrary:
    """Registry of record type descriptors with references resolved."""

    def __init__(self, record_types: list[RecordTypeDescriptor]) -> None:
        self._record_types: dict[str, RecordTypeDescriptor] = {}
        for record_type in record_types:
            self._record_types[record_type.name] = record_type
        for record_type in record_types:
            record_type._bind(self)
            self._check_refs(record_type.name, record_type.properties)

    def _check_refs(self, owner: str, properties: list[PropertyDescriptor]) -> None:
        for prop in properties:
            if prop.is_ref() and prop.ref_target not in self._record_types:
                raise UsageError(
                    f"Property {owner}.{prop.name} refers to unknown record type {prop.ref_target!r}."
                )
            self._check_refs(owner, prop.properties)

    def has_record_type(self, name: str) -> bool:
        return name in self._record_types

    def get_record_type_desc(self, name: str) -> RecordTypeDescriptor:
        try:
            return self._record_types[name]
        except KeyError:
            raise UsageError(f"Unknown record type {name!r}.") from None

    def ref_to_id(self, record_type_name: str, ref: str) -> str | int | float:
        """Convert a ``"<Type>#<id>"`` reference to the record id.

        Raises:
            RequestSyntaxError: If the reference is malformed or points to a
                different record type.
        """
        record_type = self.get_record_type_desc(record_type_name)
        prefix = f"{record_type_name}#"
        if not isinstance(ref, str) or not ref.startswith(prefix) or len(ref) == len(prefix):
            raise RequestSyntaxError(
                SyntaxErrorCode.INVALID_REFERENCE,
                f"Invalid {record_type_name} reference {ref!r}.",
            )
        raw_id = ref[len(prefix):]
        if record_type.id_value_type != "number":
            return raw_id
        try:
            number = float(raw_id)
        except ValueError:
            number = math.nan
        if not math.isfinite(number):
            raise RequestSyntaxError(
                SyntaxErrorCode.INVALID_REFERENCE,
                f"Invalid {record_type_name} reference {ref!r}: id is not a number.",
            )
        return int(number) if number.is_integer() else number


PropertyDescriptor.model_rebuild()
