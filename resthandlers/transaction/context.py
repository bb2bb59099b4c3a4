"""Per-call transaction contexts.

A context is created by a verb handler at the start of a call, threaded
through the transaction phases and the hooks, and discarded once the
response is built. Each verb has its own context type carrying the fields
that verb uses.

The DBO shortcuts (fetch, insert, update ...) run in the context's
transaction and raise UsageError when called outside of it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from resthandlers.errors.domain import ResponseError, UsageError
from resthandlers.http.service import ServiceCall, create_response
from resthandlers.protocols import DboFactory, PatchBuilder, Transaction
from resthandlers.query.models.query_spec import (
    FilterGroup,
    LockMode,
    OrderElement,
    QuerySpec,
    equals_param,
)
from resthandlers.records import RecordTypesLibrary
from resthandlers.transaction.events import TransactionEvents

logger = logging.getLogger(__name__)


class TransactionState(str, Enum):
    """Progress of a call through the transaction orchestrator."""

    IDLE = "idle"
    CONNECTION_ACQUIRED = "connection_acquired"
    TRANSACTION_STARTED = "transaction_started"
    RUNNING_PHASES = "running_phases"
    COMMITTING = "committing"
    ROLLING_BACK = "rolling_back"
    CONNECTION_RELEASED = "connection_released"
    DONE = "done"


class CallLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with the call number and, if any, the transaction id."""

    def __init__(self, logger: logging.Logger, ctx: TransactionContext) -> None:
        super().__init__(logger, {})
        self._ctx = ctx

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        tx = self._ctx.transaction
        prefix = f"(tx #{tx.id}, call #{self._ctx.call.id})" if tx else f"(call #{self._ctx.call.id})"
        return f"{prefix} {msg}", kwargs


def _reject(status_code: int, error_message: str) -> ResponseError:
    return ResponseError(create_response(status_code).set_entity({"errorMessage": error_message}))


@dataclass(kw_only=True)
class TransactionContext:
    """State of one in-flight call.

    Attributes:
        call: The call being processed.
        dbo_factory: DBO factory of the handler.
        patch_builder: Patch builder used by update shortcuts.
        query_params: Bound query parameters shared by the call's DBOs.
        transaction: Active transaction, set by the orchestrator.
        state: Orchestrator progress.
        events: Commit/rollback listeners.
        complete: Set by a phase to skip the remaining phases.
        etag: ETag header value for the response.
        last_modified: Last-Modified header value for the response.
    """

    call: ServiceCall
    dbo_factory: DboFactory
    patch_builder: PatchBuilder | None = None
    query_params: dict[str, Any] = field(default_factory=dict)
    transaction: Transaction | None = None
    state: TransactionState = TransactionState.IDLE
    events: TransactionEvents = field(default_factory=TransactionEvents)
    complete: bool = False
    etag: str | None = None
    last_modified: str | None = None
    base_logger: logging.Logger = field(default=logger, repr=False)

    def __post_init__(self) -> None:
        self.log = CallLogAdapter(self.base_logger, self)

    @property
    def record_types(self) -> RecordTypesLibrary:
        return self.dbo_factory.record_types

    def make_complete(self) -> None:
        """Skip the remaining transaction phases and commit."""
        self.complete = True

    def on(self, event: str, listener: Callable[[Any], Any]) -> None:
        """Register a ``commit`` or ``rollback`` listener."""
        self.events.on(event, listener)

    def ref_to_id(self, record_type_name: str, ref: str | None) -> Any:
        """Convert a ``"<Type>#<id>"`` reference to the record id; None passes through."""
        if ref is None:
            return None
        return self.record_types.ref_to_id(record_type_name, ref)

    def _require_transaction(self) -> Transaction:
        if self.transaction is None:
            raise UsageError("Outside of transaction.")
        return self.transaction

    # -----------------------------------------------------------------------
    # DBO shortcuts
    # -----------------------------------------------------------------------

    async def fetch(
        self,
        record_type_name: str,
        query_spec: QuerySpec,
        params: MutableMapping[str, Any] | None = None,
    ) -> Any:
        """Fetch records in the context's transaction."""
        tx = self._require_transaction()
        dbo = self.dbo_factory.build_fetch(record_type_name, query_spec)
        return await dbo.execute(tx, self.call.actor, params)

    async def insert(self, record_type_name: str, records: dict[str, Any] | list[dict[str, Any]]) -> Any:
        """Insert one record, or a list of records one after another.

        Returns:
            The new record id, or the list of new record ids.
        """
        tx = self._require_transaction()
        if isinstance(records, list):
            record_ids = []
            for record in records:
                dbo = self.dbo_factory.build_insert(record_type_name, record)
                record_ids.append(await dbo.execute(tx, self.call.actor))
            return record_ids
        dbo = self.dbo_factory.build_insert(record_type_name, records)
        return await dbo.execute(tx, self.call.actor)

    def _build_patch(self, record_type_name: str, patch_spec: Any) -> Any:
        if self.patch_builder is None:
            raise UsageError("No patch builder configured for the context.")
        return self.patch_builder.build(self.record_types, record_type_name, patch_spec)

    async def update(
        self,
        record_type_name: str,
        patch_spec: Any,
        selection_filter: FilterGroup | None,
        params: MutableMapping[str, Any] | None = None,
    ) -> Any:
        """Apply a JSON Patch to all records matching the filter."""
        tx = self._require_transaction()
        patch = self._build_patch(record_type_name, patch_spec)
        dbo = self.dbo_factory.build_update(record_type_name, patch, selection_filter)
        return await dbo.execute(tx, self.call.actor, params)

    async def dynamic_update(
        self,
        record_type_name: str,
        patch_spec_provider: Callable[[dict[str, Any]], Any],
        selection_filter: FilterGroup | None,
        order: list[OrderElement] | None = None,
        params: MutableMapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Update matching records one by one with a per-record patch.

        The records are fetched with an exclusive lock, then each one is
        patched with the document returned by ``patch_spec_provider``.

        Returns:
            ``{"records", "updated_record_ids", "test_failed",
            "failed_record_ids"}`` accumulated over all records.
        """
        tx = self._require_transaction()
        fetch_result = await self.fetch(
            record_type_name,
            QuerySpec(props=["*"], filter=selection_filter, order=order, lock=LockMode.exclusive),
            params,
        )
        id_prop = self.record_types.get_record_type_desc(record_type_name).id_property_name
        id_filter = FilterGroup(members=[equals_param(id_prop, "id")])
        summary: dict[str, Any] = {
            "records": fetch_result["records"],
            "updated_record_ids": [],
            "test_failed": False,
            "failed_record_ids": None,
        }
        for record in fetch_result["records"]:
            patch = self._build_patch(record_type_name, patch_spec_provider(record))
            dbo = self.dbo_factory.build_update(record_type_name, patch, id_filter)
            result = await dbo.execute(tx, self.call.actor, {"id": record[id_prop]})
            summary["updated_record_ids"].extend(result.get("updated_record_ids", []))
            summary["test_failed"] = summary["test_failed"] or bool(result.get("test_failed"))
            if result.get("failed_record_ids"):
                summary["failed_record_ids"] = (summary["failed_record_ids"] or []) + list(
                    result["failed_record_ids"]
                )
        return summary

    async def delete(
        self,
        record_type_name: str,
        selection_filter: FilterGroup | None,
        params: MutableMapping[str, Any] | None = None,
    ) -> Any:
        """Delete records matching the filter."""
        tx = self._require_transaction()
        dbo = self.dbo_factory.build_delete(record_type_name, selection_filter)
        return await dbo.execute(tx, self.call.actor, params)

    async def reject_if_exists(
        self,
        record_type_name: str,
        selection_filter: FilterGroup | None,
        status_code: int,
        error_message: str,
        params: MutableMapping[str, Any] | None = None,
    ) -> None:
        """Reject the call if any record matches the filter.

        The record collection is share-locked first so the check holds
        until the transaction ends.

        Raises:
            ResponseError: With the given status if a record matches.
        """
        tx = self._require_transaction()
        monitor = self.dbo_factory.record_collections_monitor
        if monitor is not None:
            await monitor.lock_collection_for_share(tx, record_type_name)
        result = await self.fetch(
            record_type_name, QuerySpec(props=[".count"], filter=selection_filter), params
        )
        if result.get("count", 0) > 0:
            raise _reject(status_code, error_message)

    async def reject_if_not_exists(
        self,
        record_type_name: str,
        selection_filter: FilterGroup | None,
        status_code: int,
        error_message: str,
        params: MutableMapping[str, Any] | None = None,
    ) -> None:
        """Reject the call unless a record matches the filter (share-locked)."""
        result = await self.fetch(
            record_type_name,
            QuerySpec(props=[], filter=selection_filter, lock=LockMode.shared),
            params,
        )
        if not result["records"]:
            raise _reject(status_code, error_message)

    async def reject_if_not_exact_num(
        self,
        record_type_name: str,
        selection_filter: FilterGroup | None,
        expected_num: int,
        status_code: int,
        error_message: str,
        params: MutableMapping[str, Any] | None = None,
    ) -> None:
        """Reject the call unless exactly ``expected_num`` records match."""
        result = await self.fetch(
            record_type_name,
            QuerySpec(props=[], filter=selection_filter, lock=LockMode.shared),
            params,
        )
        if len(result["records"]) != expected_num:
            raise _reject(status_code, error_message)


@dataclass(kw_only=True)
class SearchContext(TransactionContext):
    """Context of a collection search (GET on a collection)."""

    query_spec: QuerySpec | None = None


@dataclass(kw_only=True)
class ReadContext(TransactionContext):
    """Context of a record read (GET on an individual record)."""

    query_spec: QuerySpec | None = None


@dataclass(kw_only=True)
class CreateContext(TransactionContext):
    """Context of a record creation (POST on a collection)."""

    record_template: dict[str, Any] = field(default_factory=dict)
    parent_params: dict[str, Any] = field(default_factory=dict)


@dataclass(kw_only=True)
class UpdateContext(TransactionContext):
    """Context of a record update (PATCH on an individual record)."""

    patch: Any = None
    selection_filter: FilterGroup | None = None
    update_result: Any = None


@dataclass(kw_only=True)
class DeleteContext(TransactionContext):
    """Context of a record deletion (DELETE on an individual record)."""

    selection_filter: FilterGroup | None = None
    delete_result: Any = None
