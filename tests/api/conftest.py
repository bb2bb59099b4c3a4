"""Pytest fixtures for API tests.

Provides a FastAPI application serving the Order resources over the fake
DBO factory, and a TestClient for it.
"""

from collections.abc import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from resthandlers.api import build_resource_router, install_error_handlers
from resthandlers.handlers.factory import ResourceHandlersFactory
from resthandlers.http.service import Actor


class EchoPatchBuilder:
    def build(self, record_types, record_type_name, patch_spec):
        return ("json", patch_spec)

    def build_merge(self, record_types, record_type_name, merge_spec):
        return ("merge", merge_spec)


@pytest.fixture
def app(data_source, dbo_factory) -> FastAPI:
    factory = ResourceHandlersFactory(data_source, dbo_factory, patch_builder=EchoPatchBuilder())
    application = FastAPI()
    install_error_handlers(application)
    application.include_router(
        build_resource_router(
            "/orders",
            "/orders/{order_id}",
            factory.collection_resource("Order"),
            factory.individual_resource("Order"),
        ),
        prefix="/api/v1",
    )
    application.include_router(
        build_resource_router(
            "/accounts/{account_id}/orders",
            "/accounts/{account_id}/orders/{order_id}",
            factory.collection_resource("accountRef<-Order"),
            factory.individual_resource("accountRef<-Order"),
            actor_resolver=lambda request: Actor(id=request.headers.get("x-user", "anonymous")),
        ),
        prefix="/api/v1",
    )
    return application


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c
