"""Factory of resource handlers sharing one data source and DBO factory."""

from __future__ import annotations

from typing import Any

from resthandlers.config import HandlersConfig
from resthandlers.handlers.collection import CollectionResourceHandler
from resthandlers.handlers.individual import IndividualResourceHandler
from resthandlers.protocols import DataSource, DboFactory, PatchBuilder, RecordValidator


class ResourceHandlersFactory:
    """Creates collection and individual resource handlers.

    Args:
        data_source: Database connection pool.
        dbo_factory: DBO factory.
        options: Default handler options.
        patch_builder: Patch builder; without it individual resources do
            not allow PATCH.
        record_validator: Record validator for create and update calls.
    """

    def __init__(
        self,
        data_source: DataSource,
        dbo_factory: DboFactory,
        options: HandlersConfig | None = None,
        patch_builder: PatchBuilder | None = None,
        record_validator: RecordValidator | None = None,
    ) -> None:
        self._data_source = data_source
        self._dbo_factory = dbo_factory
        self._options = options or HandlersConfig()
        self._patch_builder = patch_builder
        self._record_validator = record_validator

    def _common(self, options: HandlersConfig | None) -> dict[str, Any]:
        return {
            "options": options or self._options,
            "patch_builder": self._patch_builder,
            "record_validator": self._record_validator,
        }

    def collection_resource(
        self, resource_path: str, options: HandlersConfig | None = None, **hooks: Any
    ) -> CollectionResourceHandler:
        """Create a handler for a record collection.

        Args:
            resource_path: Resource path, e.g. ``accountRef<-Order``.
            options: Options overriding the factory defaults.
            **hooks: ``search_hooks`` and ``create_hooks``.
        """
        return CollectionResourceHandler(
            self._data_source, self._dbo_factory, resource_path, **self._common(options), **hooks
        )

    def individual_resource(
        self, resource_path: str, options: HandlersConfig | None = None, **hooks: Any
    ) -> IndividualResourceHandler:
        """Create a handler for an individual record.

        Args:
            resource_path: Resource path, e.g. ``accountRef<-Order``.
            options: Options overriding the factory defaults.
            **hooks: ``read_hooks``, ``update_hooks`` and ``delete_hooks``.
        """
        return IndividualResourceHandler(
            self._data_source, self._dbo_factory, resource_path, **self._common(options), **hooks
        )
