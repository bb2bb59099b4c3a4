"""Exception handlers mapping resthandlers errors to HTTP responses.

Handlers already turn rejections and malformed input into responses.
These catch the errors raised from application code outside of a handler
call, for example from custom routes using the transaction context.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from resthandlers.api.routes import to_http_response
from resthandlers.errors.domain import DataError, RequestSyntaxError, ResponseError

logger = logging.getLogger(__name__)


async def request_syntax_error_handler(request: Request, exc: RequestSyntaxError) -> JSONResponse:
    """Handle RequestSyntaxError with a 400 error entity."""
    return JSONResponse(
        status_code=400,
        content={"errorCode": exc.code.value, "errorMessage": exc.message},
    )


async def data_error_handler(request: Request, exc: DataError) -> JSONResponse:
    """Handle DataError with a 500 error entity."""
    logger.error("%s %s: data error: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"errorMessage": "Internal server error."})


async def response_error_handler(request: Request, exc: ResponseError) -> Response:
    """Send the response carried by the ResponseError."""
    return to_http_response(exc.response)


def install_error_handlers(app: FastAPI) -> None:
    """Register the resthandlers exception handlers on the application."""
    app.add_exception_handler(RequestSyntaxError, request_syntax_error_handler)
    app.add_exception_handler(DataError, data_error_handler)
    app.add_exception_handler(ResponseError, response_error_handler)
