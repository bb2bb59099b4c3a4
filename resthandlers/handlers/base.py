"""Base class of the collection and individual resource handlers.

A handler serves one resource path. The path names the record type and,
for nested resources, the chain of parent reference properties leading to
it, closest parent last before the type:

    "Order"                              /orders, /orders/{id}
    "accountRef<-Order"                  /accounts/{aid}/orders[/{id}]
    "customerRef<-accountRef<-Order"     /customers/{cid}/accounts/{aid}/orders[/{id}]

Each parent in the chain is an uplink: records of the handled type are
restricted to those whose uplink property refers to the parent given in
the URI.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable, MutableMapping, Sequence
from dataclasses import dataclass
from typing import Any

from resthandlers.config import HandlersConfig
from resthandlers.errors.domain import RequestSyntaxError, ResponseError
from resthandlers.handlers.hooks import PhaseHooks, call_hook
from resthandlers.http.conditional import (
    ConditionalOutcome,
    VersionDescriptor,
    evaluate_preconditions,
    version_descriptor,
)
from resthandlers.http.service import ServiceCall, ServiceResponse, error_response
from resthandlers.protocols import DataSource, DboFactory, PatchBuilder, RecordValidator
from resthandlers.query.models.query_spec import FilterPredicate, equals_param
from resthandlers.records import RecordTypeDescriptor
from resthandlers.transaction.context import TransactionContext
from resthandlers.transaction.orchestrator import Phase, TransactionPhaseOrchestrator

logger = logging.getLogger(__name__)

RESOURCE_PATH_SEPARATOR = "<-"

Verb = Callable[[ServiceCall], Awaitable[ServiceResponse]]


@dataclass(frozen=True)
class Uplink:
    """One parent of a nested resource.

    Attributes:
        prop_path: Path of the uplink reference from the handled record
            type, e.g. ``accountRef.customerRef``.
        record_type: Descriptor of the parent record type.
    """

    prop_path: str
    record_type: RecordTypeDescriptor

    @property
    def id_value_type(self) -> str:
        return self.record_type.id_value_type


def uri_id_value(value_type: str, raw: str) -> str | int | float | None:
    """Convert a URI segment to a record id; None if it is not a valid id."""
    if value_type != "number":
        return raw
    try:
        number = float(raw)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


class AbstractResourceHandler:
    """Common machinery of the resource handlers.

    Args:
        data_source: Database connection pool.
        dbo_factory: DBO factory.
        resource_path: Resource path, e.g. ``accountRef<-Order``.
        options: Handler options.
        patch_builder: Builds patches for PATCH calls and update shortcuts.
        record_validator: Validates record data on create and update.
    """

    def __init__(
        self,
        data_source: DataSource,
        dbo_factory: DboFactory,
        resource_path: str,
        options: HandlersConfig | None = None,
        *,
        patch_builder: PatchBuilder | None = None,
        record_validator: RecordValidator | None = None,
    ) -> None:
        self._data_source = data_source
        self._dbo_factory = dbo_factory
        self._options = options or HandlersConfig()
        self._patch_builder = patch_builder
        self._record_validator = record_validator
        self._orchestrator = TransactionPhaseOrchestrator(data_source, dbo_factory.new_transaction)

        path_parts = resource_path.split(RESOURCE_PATH_SEPARATOR)
        self.record_type_name = path_parts[-1]
        self.record_type_desc = dbo_factory.record_types.get_record_type_desc(self.record_type_name)

        self.uplink_chain: list[Uplink] = []
        container = self.record_type_desc
        prop_path = ""
        for prop_name in reversed(path_parts[:-1]):
            prop_path = f"{prop_path}.{prop_name}" if prop_path else prop_name
            parent_type = container.get_property_desc(prop_name).nested_properties
            self.uplink_chain.append(Uplink(prop_path=prop_path, record_type=parent_type))
            container = parent_type

        self._verbs: dict[str, Verb] = {}

    @property
    def allowed_methods(self) -> list[str]:
        return list(self._verbs)

    # -----------------------------------------------------------------------
    # Call dispatch
    # -----------------------------------------------------------------------

    async def handle(self, call: ServiceCall) -> ServiceResponse:
        """Process a call and produce the response.

        ResponseError rejections become their response and malformed input
        becomes a 400 response. Other errors propagate.
        """
        verb = self._verbs.get(call.method)
        if verb is None:
            return error_response("RSRC-405-1", method=call.method).set_header(
                "Allow", ", ".join(self._verbs)
            )
        try:
            return await verb(call)
        except ResponseError as e:
            return e.response
        except RequestSyntaxError as e:
            logger.info("call #%d: invalid request: %s", call.id, e)
            return error_response("RSRC-400-8", detail=e.message)

    # -----------------------------------------------------------------------
    # Filters
    # -----------------------------------------------------------------------

    def _uplink_filters(
        self, call: ServiceCall, last_uplink_param_index: int, params: MutableMapping[str, Any]
    ) -> list[FilterPredicate]:
        """Build the uplink filter predicates from the URI parameters.

        Args:
            call: The call.
            last_uplink_param_index: Negative index of the immediate
                parent's id among the URI parameters (-1 for collections,
                -2 for individual records).
            params: Query parameters accumulator.
        """
        filters = []
        index = len(call.uri_params) + last_uplink_param_index
        for uplink in self.uplink_chain:
            param_name = f"uri{index}"
            value = uri_id_value(uplink.id_value_type, call.uri_params[index])
            if value is None:
                raise ResponseError(error_response("RSRC-404-2"))
            params[param_name] = value
            filters.append(equals_param(uplink.prop_path, param_name))
            index -= 1
        return filters

    # -----------------------------------------------------------------------
    # Conditional requests
    # -----------------------------------------------------------------------

    def _record_version_info(self, call: ServiceCall, record: dict[str, Any]) -> VersionDescriptor:
        desc = self.record_type_desc
        return version_descriptor(
            self._options.api_version,
            call.actor_id,
            record.get(desc.version_property) if desc.version_property else None,
            record.get(desc.modified_on_property) if desc.modified_on_property else None,
        )

    def _evaluate_preconditions(
        self, call: ServiceCall, version: VersionDescriptor
    ) -> ConditionalOutcome:
        return evaluate_preconditions(call.headers, call.method, version.etag, version.last_modified)

    @staticmethod
    def _save_validator_headers(ctx: TransactionContext, outcome: ConditionalOutcome) -> None:
        ctx.etag = outcome.etag_to_send
        ctx.last_modified = outcome.last_modified_to_send

    @staticmethod
    def _add_validator_headers(ctx: TransactionContext, response: ServiceResponse) -> ServiceResponse:
        if ctx.etag is not None:
            response.set_header("ETag", ctx.etag)
        if ctx.last_modified is not None:
            response.set_header("Last-Modified", ctx.last_modified)
        return response

    # -----------------------------------------------------------------------
    # Transactions
    # -----------------------------------------------------------------------

    async def execute_transaction(self, ctx: TransactionContext, phases: Sequence[Phase]) -> Any:
        """Run the phases in a transaction; see TransactionPhaseOrchestrator."""
        return await self._orchestrator.run(ctx, phases)

    async def _run_with_hooks(
        self,
        hooks: PhaseHooks,
        ctx: TransactionContext,
        build_phases: Callable[[], Sequence[Phase] | ServiceResponse],
    ) -> Any:
        """Run prepare hook, transaction and complete hook.

        ``build_phases`` is called after the prepare hook and returns the
        phase list, or a response to send without a transaction.
        """
        try:
            if hooks.prepare is not None:
                await call_hook(hooks.prepare, ctx)
            phases = build_phases()
            if isinstance(phases, ServiceResponse):
                return phases
            result = await self.execute_transaction(ctx, phases)
        except Exception as e:
            if hooks.complete is None:
                raise
            replacement = await call_hook(hooks.complete, e, ctx, None)
            if isinstance(replacement, BaseException):
                raise replacement from e
            if isinstance(replacement, ServiceResponse):
                return replacement
            raise
        if hooks.complete is not None:
            result = await call_hook(hooks.complete, None, ctx, result)
        return result

    @staticmethod
    def _hook_phases(hooks: PhaseHooks, main: Sequence[Phase]) -> list[Phase]:
        """Wrap the main phases with the ``before`` and ``after`` hooks."""
        phases: list[Phase] = []
        if hooks.before is not None:
            before = hooks.before

            async def before_phase(tx: Any, ctx: TransactionContext, result: Any) -> Any:
                hook_result = await call_hook(before, tx, ctx)
                # a hook completing the call supplies the final result
                return hook_result if ctx.complete else result

            phases.append(before_phase)
        phases.extend(main)
        if hooks.after is not None:
            after = hooks.after

            async def after_phase(tx: Any, ctx: TransactionContext, result: Any) -> Any:
                if isinstance(result, ServiceResponse):
                    return result
                return await call_hook(after, tx, ctx, result)

            phases.append(after_phase)
        return phases
