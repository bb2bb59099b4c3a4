"""Tests for the record type descriptors library."""

import pytest

from resthandlers.errors.domain import RequestSyntaxError, SyntaxErrorCode, UsageError
from resthandlers.records import PropertyDescriptor, RecordTypeDescriptor, RecordTypesLibrary


class TestRecordTypesLibrary:
    def test_lookup(self, record_types):
        assert record_types.has_record_type("Order")
        assert not record_types.has_record_type("Invoice")
        with pytest.raises(UsageError):
            record_types.get_record_type_desc("Invoice")

    def test_reference_resolves_to_target(self, order_type):
        target = order_type.get_property_desc("accountRef").nested_properties
        assert target.name == "Account"

    def test_unknown_reference_target(self):
        with pytest.raises(UsageError):
            RecordTypesLibrary([
                RecordTypeDescriptor(
                    name="A",
                    properties=[
                        PropertyDescriptor(name="id", value_type="number"),
                        PropertyDescriptor(name="bRef", value_type="ref", ref_target="B"),
                    ],
                ),
            ])

    def test_version_props(self, record_types, order_type):
        assert order_type.version_props == ["version", "modifiedOn"]
        assert record_types.get_record_type_desc("Account").version_props == []

    def test_id_value_type(self, record_types, order_type):
        assert order_type.id_value_type == "number"
        assert record_types.get_record_type_desc("Note").id_value_type == "string"


class TestRefToId:
    def test_number_id(self, record_types):
        assert record_types.ref_to_id("Account", "Account#12") == 12

    def test_string_id(self, record_types):
        assert record_types.ref_to_id("Note", "Note#a-1") == "a-1"

    @pytest.mark.parametrize("ref", ["Customer#12", "Account#", "12", "Account#x"])
    def test_invalid_reference(self, record_types, ref):
        with pytest.raises(RequestSyntaxError) as exc_info:
            record_types.ref_to_id("Account", ref)
        assert exc_info.value.code == SyntaxErrorCode.INVALID_REFERENCE
