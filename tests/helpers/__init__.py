"""Shared test doubles for resthandlers tests."""

from tests.helpers.fakes import (
    FakeDataSource,
    FakeDbo,
    FakeDboFactory,
    FakeTransaction,
    build_record_types,
)

__all__ = [
    "FakeDataSource",
    "FakeDbo",
    "FakeDboFactory",
    "FakeTransaction",
    "build_record_types",
]
