"""FastAPI routes exposing resource handlers over HTTP.

A router carries the collection and the individual resource of one
resource path, for example:

    router = build_resource_router(
        "/accounts/{account_id}/orders",
        "/accounts/{account_id}/orders/{order_id}",
        factory.collection_resource("accountRef<-Order"),
        factory.individual_resource("accountRef<-Order"),
    )
    app.include_router(router, prefix="/api/v1")

Route parameters are passed to the handler as URI parameters in the order
they appear in the path.
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response

from resthandlers.handlers.base import AbstractResourceHandler
from resthandlers.http.service import Actor, ServiceCall, ServiceResponse, error_response

logger = logging.getLogger(__name__)

ActorResolver = Callable[[Request], Awaitable[Actor | None] | Actor | None]

_NO_BODY_STATUSES = frozenset({204, 304})


def _media_type(content_type: str | None) -> str | None:
    if not content_type:
        return None
    return content_type.split(";", 1)[0].strip().lower() or None


async def to_service_call(request: Request, actor: Actor | None = None) -> ServiceCall:
    """Translate a starlette request to a ServiceCall.

    A JSON body is decoded; any other body is passed through as bytes.

    Raises:
        ValueError: If a JSON body cannot be decoded.
    """
    query: dict[str, list[str]] = {}
    for name, value in request.query_params.multi_items():
        query.setdefault(name, []).append(value)

    media_type = _media_type(request.headers.get("content-type"))
    body = await request.body()
    entity = None
    if body:
        if media_type is not None and (media_type == "application/json" or media_type.endswith("+json")):
            entity = json.loads(body)
        else:
            entity = body

    return ServiceCall(
        method=request.method,
        path=request.url.path,
        uri_params=[str(v) for v in request.path_params.values()],
        query=query,
        headers=dict(request.headers),
        entity=entity,
        entity_content_type=media_type,
        actor=actor,
    )


def to_http_response(response: ServiceResponse) -> Response:
    """Translate a ServiceResponse to a starlette response."""
    headers = dict(response.headers)
    if response.status_code in _NO_BODY_STATUSES or response.entity is None:
        return Response(status_code=response.status_code, headers=headers)
    if isinstance(response.entity, bytes | str):
        return Response(
            content=response.entity,
            status_code=response.status_code,
            headers=headers,
            media_type=response.content_type,
        )
    return JSONResponse(
        content=jsonable_encoder(response.entity),
        status_code=response.status_code,
        headers=headers,
        media_type=response.content_type or "application/json",
    )


def build_resource_router(
    collection_path: str,
    individual_path: str,
    collection: AbstractResourceHandler,
    individual: AbstractResourceHandler,
    actor_resolver: ActorResolver | None = None,
    tags: list[str] | None = None,
) -> APIRouter:
    """Build a router serving a collection and its individual records.

    Args:
        collection_path: Route of the collection, e.g. ``/orders``.
        individual_path: Route of a record, e.g. ``/orders/{order_id}``.
        collection: Collection resource handler.
        individual: Individual resource handler.
        actor_resolver: Returns the calling actor for a request.
        tags: OpenAPI tags of the routes.

    Returns:
        APIRouter with one route per resource.
    """
    router = APIRouter(tags=tags or [])

    def endpoint(handler: AbstractResourceHandler) -> Callable[[Request], Awaitable[Response]]:
        async def handle(request: Request) -> Response:
            actor = None
            if actor_resolver is not None:
                actor = actor_resolver(request)
                if inspect.isawaitable(actor):
                    actor = await actor
            try:
                call = await to_service_call(request, actor)
            except ValueError as e:
                logger.info("%s %s: undecodable request body: %s", request.method, request.url.path, e)
                return to_http_response(error_response("RSRC-400-8", detail="Invalid JSON in request body."))
            logger.debug("call #%d: %s %s", call.id, call.method, call.path)
            return to_http_response(await handler.handle(call))

        return handle

    all_methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    router.add_api_route(
        collection_path, endpoint(collection), methods=all_methods, include_in_schema=True
    )
    router.add_api_route(
        individual_path, endpoint(individual), methods=all_methods, include_in_schema=True
    )
    return router
