"""Collection and individual record resource handlers."""

from resthandlers.handlers.base import (
    RESOURCE_PATH_SEPARATOR,
    AbstractResourceHandler,
    Uplink,
    uri_id_value,
)
from resthandlers.handlers.collection import CollectionResourceHandler
from resthandlers.handlers.factory import ResourceHandlersFactory
from resthandlers.handlers.hooks import (
    CreateHooks,
    DeleteHooks,
    PhaseHooks,
    ReadHooks,
    SearchHooks,
    UpdateHooks,
)
from resthandlers.handlers.individual import ACCEPT_PATCH, IndividualResourceHandler

__all__ = [
    "ACCEPT_PATCH",
    "RESOURCE_PATH_SEPARATOR",
    "AbstractResourceHandler",
    "CollectionResourceHandler",
    "CreateHooks",
    "DeleteHooks",
    "IndividualResourceHandler",
    "PhaseHooks",
    "ReadHooks",
    "ResourceHandlersFactory",
    "SearchHooks",
    "UpdateHooks",
    "Uplink",
    "uri_id_value",
]
