"""FastAPI adapter of the resource handlers."""

from resthandlers.api.errors import install_error_handlers
from resthandlers.api.routes import build_resource_router, to_http_response, to_service_call

__all__ = [
    "build_resource_router",
    "install_error_handlers",
    "to_http_response",
    "to_service_call",
]
