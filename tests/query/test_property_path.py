"""Tests for property path resolution against the record schema."""

import pytest

from resthandlers.errors.domain import RequestSyntaxError, SyntaxErrorCode
from resthandlers.query.property_path import resolve_property_path


class TestResolvePropertyPath:
    """Verify resolve_property_path() walks dotted paths segment by segment."""

    def test_top_level_scalar(self, order_type):
        resolved = resolve_property_path(order_type, "status")
        assert resolved.value_type == "string"
        assert resolved.is_collection is False
        assert resolved.ref_prefix is None
        assert resolved.element_container is None

    def test_dotted_through_reference(self, order_type):
        resolved = resolve_property_path(order_type, "accountRef.lastName")
        assert resolved.path == "accountRef.lastName"
        assert resolved.property_desc.name == "lastName"
        assert resolved.value_type == "string"

    def test_dotted_through_two_references(self, order_type):
        resolved = resolve_property_path(order_type, "accountRef.customerRef.name")
        assert resolved.value_type == "string"

    def test_dotted_through_nested_object(self, order_type):
        resolved = resolve_property_path(order_type, "shipping.city")
        assert resolved.value_type == "string"

    def test_terminal_reference_uses_target_id_type(self, order_type):
        resolved = resolve_property_path(order_type, "accountRef")
        assert resolved.value_type == "number"
        assert resolved.ref_prefix == "Account#"
        assert resolved.element_container.name == "Account"

    def test_collection_of_objects(self, order_type):
        resolved = resolve_property_path(order_type, "items")
        assert resolved.is_collection is True
        assert resolved.element_container.has_property("quantity")

    def test_collection_of_strings(self, order_type):
        resolved = resolve_property_path(order_type, "tags")
        assert resolved.is_collection is True
        assert resolved.element_container is None

    @pytest.mark.parametrize("path", ["nope", "accountRef.nope", "status.", ".status", ""])
    def test_unknown_or_empty_segment(self, order_type, path):
        with pytest.raises(RequestSyntaxError) as exc_info:
            resolve_property_path(order_type, path)
        assert exc_info.value.code == SyntaxErrorCode.INVALID_PATH

    def test_dotting_into_primitive(self, order_type):
        with pytest.raises(RequestSyntaxError) as exc_info:
            resolve_property_path(order_type, "status.length")
        assert exc_info.value.code == SyntaxErrorCode.INVALID_PATH

    def test_dotting_through_collection(self, order_type):
        with pytest.raises(RequestSyntaxError) as exc_info:
            resolve_property_path(order_type, "items.quantity")
        assert exc_info.value.code == SyntaxErrorCode.NON_SCALAR_INTERMEDIATE

    def test_single_nested_object_terminal(self, order_type):
        with pytest.raises(RequestSyntaxError) as exc_info:
            resolve_property_path(order_type, "shipping")
        assert exc_info.value.code == SyntaxErrorCode.INVALID_OBJECT_USAGE
