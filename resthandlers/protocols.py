"""Interfaces of the collaborators the handlers and the orchestrator call into.

The DBO engine, the connection pool, the patch builder and the record
validator are supplied by the application. Only the narrow surface below
is used.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from resthandlers.query.models.query_spec import FilterGroup, LockMode, QuerySpec
from resthandlers.records import RecordTypesLibrary


class DataSource(Protocol):
    """Database connection pool."""

    async def acquire(self) -> Any: ...

    async def release(self, connection: Any, error: BaseException | None = None) -> None: ...


class Transaction(Protocol):
    """Transaction handle bound to one connection."""

    id: int

    async def start(self) -> None: ...

    async def commit(self, result: Any) -> Any: ...

    async def rollback(self, error: BaseException) -> None: ...

    def is_active(self) -> bool: ...


RecordHook = Callable[[dict[str, Any]], Awaitable[None] | None]


@dataclass
class UpdateCallbacks:
    """Per-record callbacks of an update DBO.

    ``before_patch`` runs on each matched record before the patch is
    applied, ``after_patch`` on the patched record before it is saved.
    Either may raise to abort the update.
    """

    before_patch: RecordHook | None = None
    after_patch: RecordHook | None = None


class Dbo(Protocol):
    """Database operation built by the DBO factory."""

    complexity: int

    async def execute(
        self,
        transaction: Transaction,
        actor: Any,
        params: Mapping[str, Any] | None = None,
        *,
        callbacks: UpdateCallbacks | None = None,
    ) -> Any: ...


@dataclass
class CollectionVersion:
    """Version of a set of record collections."""

    version: Any
    modified_on: datetime | str | None = None


class RecordCollectionsMonitor(Protocol):
    """Tracks record collection versions for conditional searches."""

    async def get_version(
        self,
        transaction: Transaction,
        record_type_names: set[str],
        lock_mode: LockMode | None = None,
    ) -> CollectionVersion | None: ...

    async def lock_collection_for_share(
        self, transaction: Transaction, record_type_name: str
    ) -> None: ...


class DboFactory(Protocol):
    """Builds DBOs and transactions."""

    record_types: RecordTypesLibrary
    record_collections_monitor: RecordCollectionsMonitor | None

    def new_transaction(self, connection: Any) -> Transaction: ...

    def build_fetch(self, record_type_name: str, query_spec: QuerySpec) -> Dbo: ...

    def build_insert(self, record_type_name: str, record: dict[str, Any]) -> Dbo: ...

    def build_update(
        self, record_type_name: str, patch: Any, selection_filter: FilterGroup | None
    ) -> Dbo: ...

    def build_delete(self, record_type_name: str, selection_filter: FilterGroup | None) -> Dbo: ...


class PatchBuilder(Protocol):
    """Builds patch objects from JSON Patch and JSON Merge Patch documents.

    Both methods raise RequestSyntaxError for a malformed document.
    """

    def build(
        self, record_types: RecordTypesLibrary, record_type_name: str, patch_spec: Any
    ) -> Any: ...

    def build_merge(
        self, record_types: RecordTypesLibrary, record_type_name: str, merge_spec: Any
    ) -> Any: ...


class RecordValidator(Protocol):
    """Validates and normalizes record data in place.

    Returns the validation errors keyed by property pointer, or None if
    the record is valid.
    """

    def normalize_record(
        self,
        record_types: RecordTypesLibrary,
        record_type_name: str,
        record: dict[str, Any],
        language: str | None,
        validation_set: str,
    ) -> dict[str, list[str]] | None: ...
