"""Root-level pytest fixtures for all tests.

Provides:
- A record types library (Customer, Account, Order, Note)
- Fake data source and DBO factory recording what the handlers and the
  orchestrator do with them
"""

import pytest

from tests.helpers.fakes import FakeDataSource, FakeDboFactory, build_record_types


@pytest.fixture
def record_types():
    return build_record_types()


@pytest.fixture
def order_type(record_types):
    return record_types.get_record_type_desc("Order")


@pytest.fixture
def data_source():
    return FakeDataSource()


@pytest.fixture
def dbo_factory(record_types):
    return FakeDboFactory(record_types)
