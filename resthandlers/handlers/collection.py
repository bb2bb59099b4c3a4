"""Collection resource handler: search (GET) and create (POST)."""

from __future__ import annotations

import html
import logging
from typing import Any
from urllib.parse import quote

from resthandlers.errors.domain import DataError, RequestSyntaxError, ResponseError
from resthandlers.handlers.base import AbstractResourceHandler, uri_id_value
from resthandlers.handlers.hooks import CreateHooks, SearchHooks
from resthandlers.http.conditional import evaluate_preconditions, version_descriptor
from resthandlers.http.service import ServiceCall, ServiceResponse, create_response, error_response
from resthandlers.query.models.query_spec import (
    FilterGroup,
    LockMode,
    QueryParts,
    QuerySpec,
    equals_param,
)
from resthandlers.query.search_query import parse_search_query
from resthandlers.records import RecordTypeDescriptor
from resthandlers.transaction.context import CreateContext, SearchContext
from resthandlers.transaction.orchestrator import Phase

logger = logging.getLogger(__name__)


class CollectionResourceHandler(AbstractResourceHandler):
    """Handler of a record collection resource.

    Args:
        search_hooks: Hooks of the GET call.
        create_hooks: Hooks of the POST call.
        **kwargs: See AbstractResourceHandler.
    """

    def __init__(
        self,
        *args: Any,
        search_hooks: SearchHooks | None = None,
        create_hooks: CreateHooks | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.search_hooks = search_hooks or SearchHooks()
        self.create_hooks = create_hooks or CreateHooks()
        self._verbs = {"GET": self.search, "POST": self.create}

    # -----------------------------------------------------------------------
    # GET
    # -----------------------------------------------------------------------

    async def search(self, call: ServiceCall) -> ServiceResponse:
        """Search the collection using the URL query.

        Responds 200 with the fetch result, 304/412 for a conditional call
        against the collection version, 400 for an invalid query string.
        """
        ctx = SearchContext(call=call, dbo_factory=self._dbo_factory, patch_builder=self._patch_builder)
        try:
            query_spec = parse_search_query(
                self.record_type_desc, call.query, QueryParts.ALL, ctx.query_params, ctx.log
            )
        except RequestSyntaxError as e:
            ctx.log.info("invalid query string: %s", e)
            return error_response("RSRC-400-1")
        ctx.query_spec = query_spec.with_filter_members(self._uplink_filters(call, -1, ctx.query_params))

        def build_phases() -> list[Phase] | ServiceResponse:
            try:
                search_dbo = self._dbo_factory.build_fetch(self.record_type_name, ctx.query_spec)
            except RequestSyntaxError as e:
                ctx.log.info("invalid query string: %s", e)
                return error_response("RSRC-400-1")

            async def execute_search(tx: Any, ctx: SearchContext, _: Any) -> Any:
                return await search_dbo.execute(tx, call.actor, ctx.query_params)

            phases = self._hook_phases(self.search_hooks, [execute_search])
            monitor = self._dbo_factory.record_collections_monitor
            if monitor is not None:
                phases.insert(0, self._collection_version_phase(monitor))
            return phases

        result = await self._run_with_hooks(self.search_hooks, ctx, build_phases)
        if isinstance(result, ServiceResponse):
            return result
        return self._add_validator_headers(ctx, create_response(200)).set_entity(result)

    def _collection_version_phase(self, monitor: Any) -> Phase:
        """Phase evaluating the call's preconditions against the collection version."""
        record_type_names = {self.record_type_name} | {u.record_type.name for u in self.uplink_chain}

        async def check_collection_version(tx: Any, ctx: SearchContext, result: Any) -> Any:
            version = await monitor.get_version(tx, record_type_names, LockMode.shared)
            if version is None:
                return result
            descriptor = version_descriptor(
                self._options.api_version, ctx.call.actor_id, version.version, version.modified_on
            )
            outcome = evaluate_preconditions(
                ctx.call.headers, ctx.call.method, descriptor.etag, descriptor.last_modified
            )
            self._save_validator_headers(ctx, outcome)
            if outcome.short_circuit is not None:
                ctx.make_complete()
                return outcome.short_circuit
            return result

        return check_collection_version

    # -----------------------------------------------------------------------
    # POST
    # -----------------------------------------------------------------------

    async def create(self, call: ServiceCall) -> ServiceResponse:
        """Create a new record from the request entity.

        Responds 201 (or 303 in ``redirect`` mode) with the Location of
        the new record, 400 for missing or invalid record data, 404 if the
        parent record of a nested collection does not exist.
        """
        record = call.entity
        if not record or not isinstance(record, dict):
            return error_response("RSRC-400-2")

        if self._record_validator is not None:
            errors = self._record_validator.normalize_record(
                self._dbo_factory.record_types,
                self.record_type_name,
                record,
                call.header("accept-language"),
                "onCreate",
            )
            if errors:
                return error_response("RSRC-400-3", validationErrors=errors)

        if not self._immediate_uplink_matches(call, record):
            return error_response("RSRC-400-7")

        ctx = CreateContext(
            call=call,
            dbo_factory=self._dbo_factory,
            patch_builder=self._patch_builder,
            record_template=record,
        )
        id_prop = self.record_type_desc.id_property_name
        response_type = self._options.post_response

        def build_phases() -> list[Phase]:
            insert_dbo = self._dbo_factory.build_insert(self.record_type_name, ctx.record_template)
            main: list[Phase] = []

            async def insert_record(tx: Any, ctx: CreateContext, _: Any) -> Any:
                return await insert_dbo.execute(tx, call.actor)

            main.append(insert_record)

            if response_type == "record":
                fetch_dbo = self._dbo_factory.build_fetch(
                    self.record_type_name, QuerySpec(filter=FilterGroup(members=[equals_param(id_prop, "id")]))
                )

                async def fetch_new_record(tx: Any, ctx: CreateContext, record_id: Any) -> Any:
                    result = await fetch_dbo.execute(tx, call.actor, {"id": record_id})
                    return result["records"][0]

                main.append(fetch_new_record)
            else:

                def fill_in_id(tx: Any, ctx: CreateContext, record_id: Any) -> Any:
                    ctx.record_template[id_prop] = record_id
                    return ctx.record_template

                main.append(fill_in_id)

            phases = self._hook_phases(self.create_hooks, main)
            if self.uplink_chain:
                phases.insert(0, self._parent_check_phase(call, ctx))
            return phases

        result = await self._run_with_hooks(self.create_hooks, ctx, build_phases)
        if isinstance(result, ServiceResponse):
            return result

        location = f"{call.path.rstrip('/')}/{quote(str(result[id_prop]), safe='')}"
        if response_type in ("status", "redirect"):
            escaped = html.escape(location)
            body = (
                "<!DOCTYPE html>\n"
                '<html lang="en">\n'
                f"  <head><title>{html.escape(self.record_type_name)} Created</title></head>\n"
                f'  <body>Location: <a href="{escaped}">{escaped}</a></body>\n'
                "</html>"
            )
            return (
                create_response(303 if response_type == "redirect" else 201)
                .set_header("Location", location)
                .set_entity(body.encode("utf-8"), "text/html; charset=UTF-8")
            )
        return (
            create_response(201)
            .set_header("Location", location)
            .set_header("Content-Location", location)
            .set_entity(result)
        )

    def _immediate_uplink_matches(self, call: ServiceCall, record: dict[str, Any]) -> bool:
        """Check that the record refers to the parent named in the URI."""
        if not self.uplink_chain:
            return True
        uplink = self.uplink_chain[0]
        expected = uri_id_value(uplink.id_value_type, call.uri_params[-1])
        ref = record.get(uplink.prop_path)
        if expected is None or not isinstance(ref, str):
            return False
        try:
            return self._dbo_factory.record_types.ref_to_id(uplink.record_type.name, ref) == expected
        except RequestSyntaxError:
            return False

    def _parent_check_phase(self, call: ServiceCall, ctx: CreateContext) -> Phase:
        """Phase verifying that the parent records named in the URI exist.

        The parent is share-locked. A missing parent completes the call
        with a 404 response, committing the transaction.
        """
        parent_type: RecordTypeDescriptor = self.uplink_chain[0].record_type
        last_index = len(call.uri_params) - 1
        members = []
        for i, uplink in enumerate(self.uplink_chain):
            param_name = f"uri{last_index - i}"
            value = uri_id_value(uplink.id_value_type, call.uri_params[last_index - i])
            if value is None:
                raise ResponseError(error_response("RSRC-404-2"))
            ctx.parent_params[param_name] = value
            path = uplink.prop_path.split(".", 1)[1] if i > 0 else parent_type.id_property_name
            members.append(equals_param(path, param_name))
        count_dbo = self._dbo_factory.build_fetch(
            parent_type.name,
            QuerySpec(props=[".count"], filter=FilterGroup(members=members), lock=LockMode.shared),
        )

        async def check_parent(tx: Any, ctx: CreateContext, result: Any) -> Any:
            count = (await count_dbo.execute(tx, call.actor, ctx.parent_params))["count"]
            if count > 1:
                raise DataError("More than one parent record.")
            if count == 0:
                ctx.make_complete()
                return error_response("RSRC-404-2")
            return result

        return check_parent
