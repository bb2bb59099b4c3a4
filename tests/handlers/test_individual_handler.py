"""Tests for the individual record resource handler."""

import pytest

from resthandlers.config import HandlersConfig
from resthandlers.errors.domain import RequestSyntaxError, SyntaxErrorCode
from resthandlers.handlers.hooks import DeleteHooks, ReadHooks, UpdateHooks
from resthandlers.handlers.individual import ACCEPT_PATCH, IndividualResourceHandler
from resthandlers.http.service import ServiceCall, create_response
from resthandlers.query.explain import explain_filter

RECORD = {"id": 7, "status": "PENDING", "version": 3, "modifiedOn": "2024-03-01T12:00:00Z"}
ETAG = '"1:-:3"'
LAST_MODIFIED = "Fri, 01 Mar 2024 12:00:00 GMT"


def _call(method, record_id="7", query=None, headers=None, entity=None, content_type=None, uri_params=None):
    return ServiceCall(
        method=method,
        path=f"/orders/{record_id}",
        uri_params=uri_params or [record_id],
        query=query or {},
        headers=headers or {},
        entity=entity,
        entity_content_type=content_type,
    )


class RecordingPatchBuilder:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def build(self, record_types, record_type_name, patch_spec):
        return self._build("json", record_type_name, patch_spec)

    def build_merge(self, record_types, record_type_name, merge_spec):
        return self._build("merge", record_type_name, merge_spec)

    def _build(self, kind, record_type_name, spec):
        self.calls.append((kind, record_type_name, spec))
        if self.error is not None:
            raise self.error
        return (kind, spec)


class RecordingValidator:
    def __init__(self, errors=None):
        self.errors = errors
        self.calls = []

    def normalize_record(self, record_types, record_type_name, record, language, validation_set):
        self.calls.append((dict(record), validation_set))
        return self.errors


def _patching_update(record=RECORD, patched=None):
    """Update DBO handler that runs the per-record callbacks like a real DBO."""
    patched = patched or {**record, "status": "SHIPPED", "version": record["version"] + 1}

    async def update(selection_filter, params, callbacks):
        await callbacks.before_patch(dict(record))
        await callbacks.after_patch(patched)
        return {"records": [patched], "updated_record_ids": [record["id"]]}

    return update


@pytest.fixture
def handler(data_source, dbo_factory):
    return IndividualResourceHandler(data_source, dbo_factory, "Order")


@pytest.fixture
def patch_builder():
    return RecordingPatchBuilder()


@pytest.fixture
def patch_handler(data_source, dbo_factory, patch_builder):
    return IndividualResourceHandler(data_source, dbo_factory, "Order", patch_builder=patch_builder)


# ---------------------------------------------------------------------------
# OPTIONS
# ---------------------------------------------------------------------------


class TestOptions:
    @pytest.mark.asyncio
    async def test_without_patch_builder(self, handler):
        response = await handler.handle(_call("OPTIONS"))
        assert response.status_code == 204
        assert response.get_header("Allow") == "OPTIONS, GET, DELETE"
        assert response.get_header("Accept-Patch") is None

    @pytest.mark.asyncio
    async def test_with_patch_builder(self, patch_handler):
        response = await patch_handler.handle(_call("OPTIONS"))
        assert response.get_header("Allow") == "OPTIONS, GET, PATCH, DELETE"
        assert response.get_header("Accept-Patch") == ACCEPT_PATCH

    @pytest.mark.asyncio
    async def test_patch_not_allowed_without_builder(self, handler):
        response = await handler.handle(_call("PATCH", entity=[], content_type="application/json-patch+json"))
        assert response.status_code == 405


# ---------------------------------------------------------------------------
# GET
# ---------------------------------------------------------------------------


class TestRead:
    """Verify record reads."""

    @pytest.mark.asyncio
    async def test_read(self, handler, dbo_factory):
        dbo_factory.fetch_handler = {"records": [RECORD]}

        response = await handler.handle(_call("GET"))

        assert response.status_code == 200
        assert response.entity == RECORD
        assert response.get_header("ETag") == ETAG
        assert response.get_header("Last-Modified") == LAST_MODIFIED
        dbo = dbo_factory.of_kind("fetch")[0]
        assert dbo.arg.props == ["*"]
        assert explain_filter(dbo.arg.filter) == "AND(id => eq :id)"
        assert dbo.calls[0]["params"] == {"id": 7}

    @pytest.mark.asyncio
    async def test_selected_properties_include_version(self, handler, dbo_factory):
        dbo_factory.fetch_handler = {"records": [RECORD]}
        await handler.handle(_call("GET", query={"p": ["status,.meta", "price"]}))
        assert dbo_factory.of_kind("fetch")[0].arg.props == ["status", "price", "version", "modifiedOn"]

    @pytest.mark.asyncio
    async def test_not_found(self, handler):
        response = await handler.handle(_call("GET"))
        assert response.status_code == 404
        assert response.entity["errorCode"] == "RSRC-404-1"

    @pytest.mark.asyncio
    async def test_invalid_id(self, handler, dbo_factory):
        response = await handler.handle(_call("GET", record_id="seven"))
        assert response.status_code == 404
        assert dbo_factory.transactions == []

    @pytest.mark.asyncio
    async def test_invalid_property_selection(self, handler, dbo_factory):
        def reject(record_type_name, query_spec):
            raise RequestSyntaxError(SyntaxErrorCode.INVALID_PATH, "no property 'nope'")

        dbo_factory.build_fetch = reject
        response = await handler.handle(_call("GET", query={"p": ["nope"]}))
        assert response.status_code == 400
        assert response.entity["errorCode"] == "RSRC-400-6"
        assert "no property 'nope'" in response.entity["errorMessage"]

    @pytest.mark.asyncio
    async def test_not_modified(self, handler, dbo_factory):
        dbo_factory.fetch_handler = {"records": [RECORD]}
        response = await handler.handle(_call("GET", headers={"If-None-Match": ETAG}))
        assert response.status_code == 304
        assert response.get_header("ETag") == ETAG
        assert dbo_factory.transactions[0].committed

    @pytest.mark.asyncio
    async def test_complex_read_checks_version_first(self, handler, dbo_factory):
        dbo_factory.fetch_complexity = 2
        fetched = []

        def fetch(query_spec, params, callbacks):
            fetched.append(query_spec.props)
            return {"records": [RECORD]}

        dbo_factory.fetch_handler = fetch

        response = await handler.handle(_call("GET", headers={"If-None-Match": ETAG}))

        assert response.status_code == 304
        assert fetched == [["version", "modifiedOn"]]

    @pytest.mark.asyncio
    async def test_complex_read_proceeds_when_modified(self, handler, dbo_factory):
        dbo_factory.fetch_complexity = 2
        fetched = []

        def fetch(query_spec, params, callbacks):
            fetched.append(query_spec.props)
            return {"records": [RECORD]}

        dbo_factory.fetch_handler = fetch

        response = await handler.handle(_call("GET", headers={"If-None-Match": '"1:-:2"'}))

        assert response.status_code == 200
        assert fetched == [["version", "modifiedOn"], ["*"]]
        assert response.get_header("ETag") == ETAG

    @pytest.mark.asyncio
    async def test_unversioned_complex_read_evaluated_up_front(self, data_source, dbo_factory):
        handler = IndividualResourceHandler(data_source, dbo_factory, "Account")
        dbo_factory.fetch_complexity = 1

        response = await handler.handle(_call("GET", headers={"If-Match": '"1:-:1"'}))

        assert response.status_code == 412
        assert dbo_factory.transactions == []

    @pytest.mark.asyncio
    async def test_nested_record(self, data_source, dbo_factory):
        handler = IndividualResourceHandler(data_source, dbo_factory, "accountRef<-Order")
        dbo_factory.fetch_handler = {"records": [RECORD]}

        await handler.handle(_call("GET", uri_params=["5", "7"]))

        dbo = dbo_factory.of_kind("fetch")[0]
        assert explain_filter(dbo.arg.filter, dbo.calls[0]["params"]) == (
            "AND(id => eq :id=7, accountRef => eq :uri0=5)"
        )

    @pytest.mark.asyncio
    async def test_read_hooks(self, data_source, dbo_factory):
        dbo_factory.fetch_handler = {"records": [RECORD]}
        hooks = ReadHooks(after=lambda tx, ctx, record: {**record, "computed": 1})
        handler = IndividualResourceHandler(data_source, dbo_factory, "Order", read_hooks=hooks)

        response = await handler.handle(_call("GET"))

        assert response.entity["computed"] == 1

    @pytest.mark.asyncio
    async def test_before_hook_completes_call(self, data_source, dbo_factory):
        def deny(tx, ctx):
            ctx.make_complete()
            return create_response(403)

        dbo_factory.fetch_handler = {"records": [RECORD]}
        handler = IndividualResourceHandler(data_source, dbo_factory, "Order", read_hooks=ReadHooks(before=deny))

        response = await handler.handle(_call("GET"))

        assert response.status_code == 403
        assert response.get_header("ETag") is None
        assert dbo_factory.of_kind("fetch")[0].calls == []
        assert dbo_factory.transactions[0].committed

    @pytest.mark.asyncio
    async def test_string_id(self, data_source, dbo_factory):
        handler = IndividualResourceHandler(data_source, dbo_factory, "Note")
        dbo_factory.fetch_handler = {"records": [{"id": "a-1", "text": "hi"}]}

        response = await handler.handle(_call("GET", record_id="a-1"))

        assert response.status_code == 200
        assert dbo_factory.of_kind("fetch")[0].calls[0]["params"] == {"id": "a-1"}
        assert response.get_header("ETag") is None


# ---------------------------------------------------------------------------
# PATCH
# ---------------------------------------------------------------------------


JSON_PATCH_DOC = [{"op": "replace", "path": "/status", "value": "SHIPPED"}]


def _patch(entity=JSON_PATCH_DOC, content_type="application/json-patch+json", headers=None):
    return _call("PATCH", entity=entity, content_type=content_type, headers=headers)


class TestUpdate:
    """Verify record updates with JSON Patch and JSON Merge Patch."""

    @pytest.mark.asyncio
    async def test_json_patch(self, patch_handler, dbo_factory, patch_builder):
        dbo_factory.update_handler = _patching_update()

        response = await patch_handler.handle(_patch())

        assert response.status_code == 200
        assert response.entity["status"] == "SHIPPED"
        assert response.get_header("Content-Location") == "/orders/7"
        assert response.get_header("ETag") == '"1:-:4"'
        assert patch_builder.calls == [("json", "Order", JSON_PATCH_DOC)]
        update = dbo_factory.of_kind("update")[0]
        assert update.patch == ("json", JSON_PATCH_DOC)
        assert explain_filter(update.arg) == "AND(id => eq :id)"
        assert dbo_factory.transactions[0].committed

    @pytest.mark.asyncio
    async def test_merge_patch(self, patch_handler, dbo_factory, patch_builder):
        dbo_factory.update_handler = _patching_update()

        response = await patch_handler.handle(
            _patch({"status": "SHIPPED"}, "application/merge-patch+json")
        )

        assert response.status_code == 200
        assert patch_builder.calls == [("merge", "Order", {"status": "SHIPPED"})]

    @pytest.mark.asyncio
    async def test_missing_patch(self, patch_handler):
        response = await patch_handler.handle(_patch(entity=None))
        assert response.status_code == 400
        assert response.entity["errorCode"] == "RSRC-400-4"

    @pytest.mark.asyncio
    async def test_unsupported_patch_format(self, patch_handler):
        response = await patch_handler.handle(_patch(content_type="application/json"))
        assert response.status_code == 415
        assert response.get_header("Accept-Patch") == ACCEPT_PATCH

    @pytest.mark.asyncio
    async def test_invalid_patch(self, data_source, dbo_factory):
        builder = RecordingPatchBuilder(RequestSyntaxError(SyntaxErrorCode.INVALID_PATCH, "bad op 'move'"))
        handler = IndividualResourceHandler(data_source, dbo_factory, "Order", patch_builder=builder)

        response = await handler.handle(_patch())

        assert response.status_code == 400
        assert response.entity["errorCode"] == "RSRC-400-5"
        assert response.entity["errorMessage"] == "Invalid patch document: bad op 'move'"

    @pytest.mark.asyncio
    async def test_not_found(self, patch_handler, dbo_factory):
        response = await patch_handler.handle(_patch())
        assert response.status_code == 404
        assert dbo_factory.transactions[0].rolled_back

    @pytest.mark.asyncio
    async def test_precondition_failed(self, patch_handler, dbo_factory):
        dbo_factory.update_handler = _patching_update()

        response = await patch_handler.handle(_patch(headers={"If-Match": '"1:-:2"'}))

        assert response.status_code == 412
        assert dbo_factory.transactions[0].rolled_back

    @pytest.mark.asyncio
    async def test_precondition_met(self, patch_handler, dbo_factory):
        dbo_factory.update_handler = _patching_update()
        response = await patch_handler.handle(_patch(headers={"If-Match": ETAG}))
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_patched_record_invalid(self, data_source, dbo_factory, patch_builder):
        errors = {"/status": ["Unknown status."]}
        validator = RecordingValidator(errors)
        handler = IndividualResourceHandler(
            data_source, dbo_factory, "Order", patch_builder=patch_builder, record_validator=validator
        )
        dbo_factory.update_handler = _patching_update()

        response = await handler.handle(_patch())

        assert response.status_code == 422
        assert response.entity["validationErrors"] == errors
        assert validator.calls[0][1] == "onUpdate"
        assert dbo_factory.transactions[0].rolled_back

    @pytest.mark.asyncio
    async def test_no_content_mode(self, data_source, dbo_factory, patch_builder):
        handler = IndividualResourceHandler(
            data_source, dbo_factory, "Order", HandlersConfig(patch_response="nocontent"),
            patch_builder=patch_builder,
        )
        dbo_factory.update_handler = _patching_update()

        response = await handler.handle(_patch())

        assert response.status_code == 204
        assert response.entity is None
        assert response.get_header("ETag") == '"1:-:4"'

    @pytest.mark.asyncio
    async def test_reread_mode(self, data_source, dbo_factory, patch_builder):
        handler = IndividualResourceHandler(
            data_source, dbo_factory, "Order", HandlersConfig(patch_response="reread"),
            patch_builder=patch_builder,
        )
        dbo_factory.update_handler = _patching_update()
        reread = {**RECORD, "status": "SHIPPED", "version": 4, "computed": True}
        dbo_factory.fetch_handler = {"records": [reread]}

        response = await handler.handle(_patch())

        assert response.entity == reread
        assert dbo_factory.of_kind("fetch")[0].calls[0]["params"] == {"id": 7}

    @pytest.mark.asyncio
    async def test_update_hooks(self, data_source, dbo_factory, patch_builder):
        seen = []
        hooks = UpdateHooks(
            before=lambda ctx, record: seen.append(("before", record["status"])),
            before_save=lambda ctx, record: seen.append(("before_save", record["status"])),
            after=lambda tx, ctx, record: {**record, "after": True},
        )
        handler = IndividualResourceHandler(
            data_source, dbo_factory, "Order", patch_builder=patch_builder, update_hooks=hooks
        )
        dbo_factory.update_handler = _patching_update()

        response = await handler.handle(_patch())

        assert seen == [("before", "PENDING"), ("before_save", "SHIPPED")]
        assert response.entity["after"] is True


# ---------------------------------------------------------------------------
# DELETE
# ---------------------------------------------------------------------------


class TestDelete:
    """Verify record deletion."""

    @pytest.mark.asyncio
    async def test_delete(self, handler, dbo_factory):
        dbo_factory.delete_handler = {"Order": 1}

        response = await handler.handle(_call("DELETE"))

        assert response.status_code == 204
        delete = dbo_factory.of_kind("delete")[0]
        assert explain_filter(delete.arg) == "AND(id => eq :id)"
        assert delete.calls[0]["params"] == {"id": 7}
        assert dbo_factory.of_kind("fetch") == []

    @pytest.mark.asyncio
    async def test_not_found(self, handler, dbo_factory):
        dbo_factory.delete_handler = {"Order": 0}
        response = await handler.handle(_call("DELETE"))
        assert response.status_code == 404
        assert dbo_factory.transactions[0].rolled_back

    @pytest.mark.asyncio
    async def test_conditional_delete(self, handler, dbo_factory):
        dbo_factory.fetch_handler = {"records": [RECORD]}
        dbo_factory.delete_handler = {"Order": 1}

        response = await handler.handle(_call("DELETE", headers={"If-Match": ETAG}))

        assert response.status_code == 204
        assert dbo_factory.of_kind("fetch")[0].arg.props == ["version", "modifiedOn"]

    @pytest.mark.asyncio
    async def test_conditional_delete_precondition_failed(self, handler, dbo_factory):
        dbo_factory.fetch_handler = {"records": [RECORD]}

        response = await handler.handle(_call("DELETE", headers={"If-Match": '"1:-:2"'}))

        assert response.status_code == 412
        assert dbo_factory.of_kind("delete")[0].calls == []

    @pytest.mark.asyncio
    async def test_conditional_delete_of_missing_record(self, handler):
        response = await handler.handle(_call("DELETE", headers={"If-Match": ETAG}))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_hooks(self, data_source, dbo_factory):
        committed = []
        dbo_factory.delete_handler = {"Order": 1}
        hooks = DeleteHooks(before=lambda tx, ctx: ctx.on("commit", committed.append))
        handler = IndividualResourceHandler(data_source, dbo_factory, "Order", delete_hooks=hooks)

        await handler.handle(_call("DELETE"))

        assert committed == [None]

    @pytest.mark.asyncio
    async def test_before_hook_completes_call(self, data_source, dbo_factory):
        def deny(tx, ctx):
            ctx.make_complete()
            return create_response(403)

        dbo_factory.delete_handler = {"Order": 1}
        handler = IndividualResourceHandler(
            data_source, dbo_factory, "Order", delete_hooks=DeleteHooks(before=deny)
        )

        response = await handler.handle(_call("DELETE"))

        assert response.status_code == 403
        assert dbo_factory.of_kind("delete")[0].calls == []
        assert dbo_factory.transactions[0].committed
