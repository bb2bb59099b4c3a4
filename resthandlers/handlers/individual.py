"""Individual record resource handler: OPTIONS, GET, PATCH and DELETE."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import MutableMapping
from typing import Any

from resthandlers.errors.domain import RequestSyntaxError, ResponseError
from resthandlers.handlers.base import AbstractResourceHandler, uri_id_value
from resthandlers.handlers.hooks import DeleteHooks, ReadHooks, UpdateHooks, call_hook
from resthandlers.http.conditional import evaluate_preconditions, is_conditional_request
from resthandlers.http.service import ServiceCall, ServiceResponse, create_response, error_response
from resthandlers.protocols import UpdateCallbacks
from resthandlers.query.models.query_spec import FilterGroup, QuerySpec, equals_param
from resthandlers.transaction.context import (
    DeleteContext,
    ReadContext,
    TransactionContext,
    UpdateContext,
)
from resthandlers.transaction.orchestrator import Phase

logger = logging.getLogger(__name__)

JSON_PATCH = "application/json-patch+json"
MERGE_PATCH = "application/merge-patch+json"
ACCEPT_PATCH = f"{JSON_PATCH}, {MERGE_PATCH}"


class IndividualResourceHandler(AbstractResourceHandler):
    """Handler of an individual record resource.

    PATCH is available only when a patch builder is configured.

    Args:
        read_hooks: Hooks of the GET call.
        update_hooks: Hooks of the PATCH call.
        delete_hooks: Hooks of the DELETE call.
        **kwargs: See AbstractResourceHandler.
    """

    def __init__(
        self,
        *args: Any,
        read_hooks: ReadHooks | None = None,
        update_hooks: UpdateHooks | None = None,
        delete_hooks: DeleteHooks | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.read_hooks = read_hooks or ReadHooks()
        self.update_hooks = update_hooks or UpdateHooks()
        self.delete_hooks = delete_hooks or DeleteHooks()
        self._verbs = {"OPTIONS": self.options, "GET": self.read}
        if self._patch_builder is not None:
            self._verbs["PATCH"] = self.update
        self._verbs["DELETE"] = self.delete

    # -----------------------------------------------------------------------
    # Common
    # -----------------------------------------------------------------------

    def _record_id(self, call: ServiceCall) -> Any:
        record_id = uri_id_value(self.record_type_desc.id_value_type, call.uri_params[-1])
        if record_id is None:
            raise ResponseError(error_response("RSRC-404-1"))
        return record_id

    def _selection_filter(self, call: ServiceCall, params: MutableMapping[str, Any]) -> FilterGroup:
        """Filter selecting the addressed record: id plus uplinks."""
        params["id"] = self._record_id(call)
        members = [equals_param(self.record_type_desc.id_property_name, "id")]
        members.extend(self._uplink_filters(call, -2, params))
        return FilterGroup(members=members)

    def _conditional_phase(self, ctx: TransactionContext, selection_filter: FilterGroup) -> Phase | ServiceResponse | None:
        """Pre-fetch the record version and evaluate the call's preconditions.

        Returns the phase, or the short-circuit response right away if the
        record type has no version meta-properties, or None if there is
        nothing to short-circuit.
        """
        version_props = self.record_type_desc.version_props
        call = ctx.call
        if not version_props:
            outcome = self._evaluate_preconditions(call, self._record_version_info(call, {}))
            return outcome.short_circuit

        version_dbo = self._dbo_factory.build_fetch(
            self.record_type_name, QuerySpec(props=version_props, filter=selection_filter)
        )

        async def check_preconditions(tx: Any, ctx: TransactionContext, result: Any) -> Any:
            fetched = await version_dbo.execute(tx, call.actor, ctx.query_params)
            if not fetched["records"]:
                raise ResponseError(error_response("RSRC-404-1"))
            outcome = self._evaluate_preconditions(call, self._record_version_info(call, fetched["records"][0]))
            if outcome.short_circuit is not None:
                ctx.make_complete()
                return outcome.short_circuit
            return result

        return check_preconditions

    # -----------------------------------------------------------------------
    # OPTIONS
    # -----------------------------------------------------------------------

    async def options(self, call: ServiceCall) -> ServiceResponse:
        """Advertise the allowed methods and accepted patch formats."""
        response = create_response(204).set_header("Allow", ", ".join(self._verbs))
        if "PATCH" in self._verbs:
            response.set_header("Accept-Patch", ACCEPT_PATCH)
        return response

    # -----------------------------------------------------------------------
    # GET
    # -----------------------------------------------------------------------

    async def read(self, call: ServiceCall) -> ServiceResponse:
        """Read the record.

        The ``p`` query parameter selects properties; the version
        meta-properties are always included. Responds 200 with the record
        and its validators, 304/412 for a conditional call, 404 if the
        record does not exist.
        """
        ctx = ReadContext(call=call, dbo_factory=self._dbo_factory, patch_builder=self._patch_builder)
        props_param = call.query.get("p")
        if props_param and props_param != [""]:
            selected = [p for p in ",".join(props_param).split(",") if p and not p.startswith(".")]
            selected.extend(p for p in self.record_type_desc.version_props if p not in selected)
        else:
            selected = ["*"]
        ctx.query_spec = QuerySpec(props=selected, filter=self._selection_filter(call, ctx.query_params))

        def build_phases() -> list[Phase] | ServiceResponse:
            try:
                read_dbo = self._dbo_factory.build_fetch(self.record_type_name, ctx.query_spec)
            except RequestSyntaxError as e:
                return error_response("RSRC-400-6", detail=e.message)

            # complex reads check the version before fetching the record
            prefetch = is_conditional_request(call.headers) and read_dbo.complexity > 0
            phases: list[Phase] = []
            if prefetch:
                conditional = self._conditional_phase(ctx, ctx.query_spec.filter)
                if isinstance(conditional, ServiceResponse):
                    return conditional
                if conditional is not None:
                    phases.append(conditional)

            async def read_record(tx: Any, ctx: ReadContext, _: Any) -> Any:
                result = await read_dbo.execute(tx, call.actor, ctx.query_params)
                if not result["records"]:
                    raise ResponseError(error_response("RSRC-404-1"))
                record = result["records"][0]
                outcome = self._evaluate_preconditions(call, self._record_version_info(call, record))
                if not prefetch and outcome.short_circuit is not None:
                    ctx.make_complete()
                    return outcome.short_circuit
                self._save_validator_headers(ctx, outcome)
                return record

            return phases + self._hook_phases(self.read_hooks, [read_record])

        result = await self._run_with_hooks(self.read_hooks, ctx, build_phases)
        if isinstance(result, ServiceResponse):
            return result
        return self._add_validator_headers(ctx, create_response(200)).set_entity(result)

    # -----------------------------------------------------------------------
    # PATCH
    # -----------------------------------------------------------------------

    async def update(self, call: ServiceCall) -> ServiceResponse:
        """Patch the record with a JSON Patch or JSON Merge Patch document.

        Responds 200 with the patched record (204 in ``nocontent`` mode),
        400 for a missing or invalid patch, 412 if a precondition fails,
        415 for an unsupported patch format, 422 if the patched record is
        invalid, 404 if the record does not exist.
        """
        patch_spec = call.entity
        if patch_spec is None:
            return error_response("RSRC-400-4")

        record_types = self._dbo_factory.record_types
        try:
            if call.entity_content_type == JSON_PATCH:
                patch = self._patch_builder.build(record_types, self.record_type_name, patch_spec)
            elif call.entity_content_type == MERGE_PATCH:
                patch = self._patch_builder.build_merge(record_types, self.record_type_name, patch_spec)
            else:
                return error_response("RSRC-415-1").set_header("Accept-Patch", ACCEPT_PATCH)
        except RequestSyntaxError as e:
            return error_response("RSRC-400-5", detail=e.message)

        ctx = UpdateContext(
            call=call, dbo_factory=self._dbo_factory, patch_builder=self._patch_builder, patch=patch
        )
        ctx.selection_filter = self._selection_filter(call, ctx.query_params)
        hooks = self.update_hooks
        response_type = self._options.patch_response
        id_prop = self.record_type_desc.id_property_name

        async def before_patch(record: dict[str, Any]) -> None:
            outcome = self._evaluate_preconditions(call, self._record_version_info(call, record))
            if outcome.short_circuit is not None:
                raise ResponseError(outcome.short_circuit)
            if hooks.before is not None:
                await call_hook(hooks.before, ctx, record)

        async def after_patch(record: dict[str, Any]) -> None:
            if self._record_validator is not None:
                errors = self._record_validator.normalize_record(
                    record_types, self.record_type_name, record, call.header("accept-language"), "onUpdate"
                )
                if errors:
                    raise ResponseError(error_response("RSRC-422-1", validationErrors=errors))
            if hooks.before_save is not None:
                await call_hook(hooks.before_save, ctx, record)

        def build_phases() -> list[Phase]:
            update_dbo = self._dbo_factory.build_update(self.record_type_name, ctx.patch, ctx.selection_filter)
            main: list[Phase] = []

            async def update_record(tx: Any, ctx: UpdateContext, _: Any) -> Any:
                result = await update_dbo.execute(
                    tx,
                    call.actor,
                    ctx.query_params,
                    callbacks=UpdateCallbacks(before_patch=before_patch, after_patch=after_patch),
                )
                ctx.update_result = result
                if not result["records"]:
                    raise ResponseError(error_response("RSRC-404-1"))
                return result["records"][0]

            main.append(update_record)

            if response_type == "reread":
                reread_dbo = self._dbo_factory.build_fetch(
                    self.record_type_name, QuerySpec(filter=FilterGroup(members=[equals_param(id_prop, "id")]))
                )

                async def reread_record(tx: Any, ctx: UpdateContext, record: Any) -> Any:
                    result = await reread_dbo.execute(tx, call.actor, {"id": record[id_prop]})
                    return result["records"][0]

                main.append(reread_record)

            # "before" runs per record inside the update, not as a phase
            return self._hook_phases(dataclasses.replace(hooks, before=None), main)

        record = await self._run_with_hooks(hooks, ctx, build_phases)
        if isinstance(record, ServiceResponse):
            return record

        version = self._record_version_info(call, record)
        outcome = evaluate_preconditions({}, call.method, version.etag, version.last_modified)
        self._save_validator_headers(ctx, outcome)
        if response_type == "nocontent":
            response = create_response(204)
        else:
            response = create_response(200).set_header("Content-Location", call.path).set_entity(record)
        return self._add_validator_headers(ctx, response)

    # -----------------------------------------------------------------------
    # DELETE
    # -----------------------------------------------------------------------

    async def delete(self, call: ServiceCall) -> ServiceResponse:
        """Delete the record.

        Responds 204, 412 if a precondition fails, 404 if the record does
        not exist.
        """
        ctx = DeleteContext(call=call, dbo_factory=self._dbo_factory, patch_builder=self._patch_builder)
        ctx.selection_filter = self._selection_filter(call, ctx.query_params)

        def build_phases() -> list[Phase] | ServiceResponse:
            delete_dbo = self._dbo_factory.build_delete(self.record_type_name, ctx.selection_filter)
            phases: list[Phase] = []
            if is_conditional_request(call.headers):
                conditional = self._conditional_phase(ctx, ctx.selection_filter)
                if isinstance(conditional, ServiceResponse):
                    return conditional
                if conditional is not None:
                    phases.append(conditional)

            async def delete_record(tx: Any, ctx: DeleteContext, _: Any) -> Any:
                result = await delete_dbo.execute(tx, call.actor, ctx.query_params)
                ctx.delete_result = result
                if not result.get(self.record_type_name):
                    raise ResponseError(error_response("RSRC-404-1"))
                return None

            return phases + self._hook_phases(self.delete_hooks, [delete_record])

        result = await self._run_with_hooks(self.delete_hooks, ctx, build_phases)
        if isinstance(result, ServiceResponse):
            return result
        return create_response(204)
